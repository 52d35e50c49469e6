"""
Client HTTP du service catalogue.

Stateless: each call is one request against `{base_url}/products`, with no
retries and no caching. Responses are checked for a success status and then
validated against the Product schema before anything is returned.
"""
import time
from typing import List, Optional, Union
from urllib.parse import quote

import httpx
from loguru import logger
from prometheus_client import Counter, Histogram
from pydantic import TypeAdapter, ValidationError

from config import SERVICE_NAME
from models import Product
from schemas import ProductDraft

TARGET_SERVICE = "catalog-service"

EXTERNAL_CALL_COUNT = Counter(
    "external_service_calls_total",
    "Total external service calls",
    ["service", "target_service", "status"]
)
EXTERNAL_CALL_LATENCY = Histogram(
    "external_service_call_duration_seconds",
    "External service call latency in seconds",
    ["service", "target_service"]
)

PRODUCT = TypeAdapter(Product)
PRODUCT_LIST = TypeAdapter(List[Product])


class CatalogError(Exception):
    """Base class for every catalog service failure."""


class TransportError(CatalogError):
    """The request could not be sent or no response came back."""


class DecodeError(CatalogError):
    """The response body is not the expected JSON shape."""


class ServiceError(CatalogError):
    """The catalog service answered with a non-success status."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Catalog service returned {status_code}: {detail[:200]}")


def _payload(draft: Union[ProductDraft, Product]) -> dict:
    product = draft if isinstance(draft, Product) else draft.to_product()
    return product.model_dump()


class CatalogClient:
    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.AsyncClient] = None):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.aclose()

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, trace_id: str = None, **kwargs) -> httpx.Response:
        start_time = time.time()
        headers = {"X-Trace-ID": trace_id} if trace_id else {}

        try:
            resp = await self._client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
        except httpx.RequestError as e:
            logger.bind(trace_id=trace_id).error("Error calling catalog service: {}", e)
            EXTERNAL_CALL_COUNT.labels(
                service=SERVICE_NAME,
                target_service=TARGET_SERVICE,
                status="error"
            ).inc()
            raise TransportError(f"{method} {path} failed: {e!r}") from e

        latency = time.time() - start_time
        EXTERNAL_CALL_COUNT.labels(
            service=SERVICE_NAME,
            target_service=TARGET_SERVICE,
            status="success" if resp.is_success else "error"
        ).inc()
        EXTERNAL_CALL_LATENCY.labels(
            service=SERVICE_NAME,
            target_service=TARGET_SERVICE
        ).observe(latency)

        if not resp.is_success:
            logger.bind(status=resp.status_code, trace_id=trace_id).warning(
                "Catalog service answered {} to {} {}", resp.status_code, method, path
            )
            raise ServiceError(resp.status_code, resp.text)
        logger.bind(latency=latency, trace_id=trace_id).info("{} {} -> {}", method, path, resp.status_code)
        return resp

    @staticmethod
    def _decode(resp: httpx.Response, adapter: TypeAdapter):
        try:
            return adapter.validate_json(resp.content)
        except ValidationError as e:
            logger.error("Malformed catalog response: {} error(s)", e.error_count())
            raise DecodeError(f"Unexpected response body from {resp.request.url.path}: {e}") from e

    async def list(self, trace_id: str = None) -> List[Product]:
        resp = await self._request("GET", "/products", trace_id)
        return self._decode(resp, PRODUCT_LIST)

    async def create(self, draft: Union[ProductDraft, Product], trace_id: str = None) -> Product:
        resp = await self._request("POST", "/products", trace_id, json=_payload(draft))
        return self._decode(resp, PRODUCT)

    async def update(self, product_id: str, draft: Union[ProductDraft, Product], trace_id: str = None) -> Product:
        resp = await self._request("PUT", f"/products/{quote(product_id, safe='')}", trace_id, json=_payload(draft))
        return self._decode(resp, PRODUCT)

    async def delete(self, product_id: str, trace_id: str = None) -> None:
        await self._request("DELETE", f"/products/{quote(product_id, safe='')}", trace_id)
