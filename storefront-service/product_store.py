import asyncio
from typing import List, Optional, Union

from loguru import logger

from catalog_client import CatalogClient, CatalogError
from models import Product
from schemas import DraftError, ProductDraft


class ProductStore:
    """
    Product state for one operator session, kept in sync with the catalog.

    Every successful mutation is followed by a full reload of the list; the
    local list is never patched from request payloads. Mutations are queued
    so that at most one (with its reload) is in flight per store.
    """

    def __init__(self, client: CatalogClient):
        self.client = client
        self.products: List[Product] = []
        self.selected: Optional[Product] = None
        self.loaded = False
        self.error: Optional[str] = None
        self._pending_loads = 0
        self._alive = True
        self._mutation_lock = asyncio.Lock()

    @property
    def loading(self) -> bool:
        return self._pending_loads > 0

    @property
    def status(self) -> str:
        if not self.loaded:
            return "error" if self.error and not self.loading else "loading"
        return "ready"

    @property
    def alive(self) -> bool:
        return self._alive

    def close(self):
        """Detach the store; results arriving afterwards are dropped."""
        self._alive = False

    def get(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.products if p.id == product_id), None)

    def select(self, product: Optional[Product]):
        if not self._alive:
            return
        self.selected = product
        logger.bind(product_id=product.id if product else None).info("Edit mode" if product else "Create mode")

    async def refresh(self, trace_id: str = None) -> bool:
        self._pending_loads += 1
        try:
            products = await self.client.list(trace_id=trace_id)
        except CatalogError as e:
            self._surface("refresh", e)
            return False
        finally:
            self._pending_loads -= 1

        if not self._alive:
            logger.warning("Dropping product list received after the store was closed")
            return False
        self.products = products
        self.loaded = True
        self.error = None
        logger.bind(trace_id=trace_id).info("Loaded {} products", len(products))
        return True

    async def create(self, draft: Union[ProductDraft, Product], trace_id: str = None) -> Product:
        async with self._mutation_lock:
            return await self._mutate("create", self.client.create, draft, trace_id=trace_id)

    async def update(self, product_id: str, draft: Union[ProductDraft, Product], trace_id: str = None) -> Product:
        async with self._mutation_lock:
            updated = await self._mutate("update", self.client.update, product_id, draft, trace_id=trace_id)
            self.select(None)
            return updated

    async def delete(self, product_id: str, trace_id: str = None):
        async with self._mutation_lock:
            await self._mutate("delete", self.client.delete, product_id, trace_id=trace_id)
            if self.selected is not None and self.selected.id == product_id:
                self.select(None)

    async def submit(self, draft: ProductDraft, trace_id: str = None) -> Product:
        """Shared path of the product form: update in edit mode, create otherwise."""
        selected = self.selected
        if selected is None:
            return await self.create(draft, trace_id=trace_id)
        # L'identifiant n'est pas modifiable en mode édition
        draft = draft.model_copy(update={"id": selected.id})
        return await self.update(selected.id, draft, trace_id=trace_id)

    async def _mutate(self, action: str, call, *args, trace_id: str = None):
        logger.bind(trace_id=trace_id).info("Product {} requested", action)
        try:
            result = await call(*args, trace_id=trace_id)
        except (CatalogError, DraftError) as e:
            self._surface(action, e)
            raise
        await self.refresh(trace_id=trace_id)
        return result

    def _surface(self, action: str, error: Exception):
        logger.bind(action=action, error_type=type(error).__name__).error(
            "Product {} failed: {}", action, error
        )
        if self._alive:
            self.error = str(error)
