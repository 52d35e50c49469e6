import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Form, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from loguru import logger
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

import config
from catalog_client import CatalogClient, CatalogError
from product_store import ProductStore
from schemas import DraftError, ProductDraft, StoreState

SERVICE_NAME = config.SERVICE_NAME

# Config logging JSON (niveaux INFO, WARNING, ERROR)
logger.remove()
logger.add(
    sink=config.LOG_SINK,
    format="{time:YYYY-MM-DDTHH:mm:ss.SSSZ} | {level} | {message} | {extra}",
    level=config.LOG_LEVEL,
    serialize=True,
    rotation="1 day",
)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "method", "endpoint", "status"]
)
REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["service", "method", "endpoint"]
)
ERROR_COUNT = Counter(
    "http_errors_total",
    "Total HTTP errors",
    ["service", "endpoint", "error_type"]
)

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def build_catalog_client() -> CatalogClient:
    return CatalogClient(config.CATALOG_URL, timeout=config.CATALOG_TIMEOUT)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Un store par session opérateur, lié au cycle de vie de l'application
    client = build_catalog_client()
    app.state.store = ProductStore(client)
    logger.info("Catalog service at {}", client.base_url)
    try:
        yield
    finally:
        app.state.store.close()
        await client.aclose()


app = FastAPI(title="Storefront Service", lifespan=lifespan)


def get_store(request: Request) -> ProductStore:
    return request.app.state.store


# Middleware pour logger les requests avec correlation ID
@app.middleware("http")
async def log_requests(request: Request, call_next):
    # Generate or propagate correlation ID (trace-id)
    trace_id = request.headers.get("X-Trace-ID", str(uuid.uuid4()))
    start_time = time.time()

    # Store trace_id in request state for use in other handlers
    request.state.trace_id = trace_id

    with logger.contextualize(trace_id=trace_id, service=SERVICE_NAME):
        logger.bind(method=request.method, url=str(request.url)).info(
            "Request: {} {}", request.method, request.url.path
        )

        response = await call_next(request)

        latency = time.time() - start_time
        REQUEST_COUNT.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code
        ).inc()
        REQUEST_LATENCY.labels(
            service=SERVICE_NAME,
            method=request.method,
            endpoint=request.url.path
        ).observe(latency)

        logger.bind(status=response.status_code, latency=latency).info(
            "Response status: {}", response.status_code
        )

        response.headers["X-Trace-ID"] = trace_id
        return response


def back_to_products(notice: Optional[str] = None) -> RedirectResponse:
    url = "/products"
    if notice:
        url += "?" + urlencode({"notice": notice})
    return RedirectResponse(url=url, status_code=303)


def reload_notice(store: ProductStore, done: str) -> Optional[str]:
    # La mutation a réussi mais la liste affichée peut être périmée
    if store.error:
        return f"{done}, but the product list could not be reloaded: {store.error}"
    return None


@app.get("/metrics")
async def metrics():
    """Endpoint /metrics compatible Prometheus"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health")
async def health():
    """Health check endpoint"""
    return {"status": "healthy", "service": SERVICE_NAME}


@app.get("/", response_class=HTMLResponse)
async def home_page(request: Request, store: ProductStore = Depends(get_store)):
    await store.refresh(trace_id=request.state.trace_id)
    return templates.TemplateResponse(request, "home.html", {"title": "Home", "store": store})


@app.get("/products", response_class=HTMLResponse)
async def products_page(request: Request, notice: Optional[str] = None, store: ProductStore = Depends(get_store)):
    await store.refresh(trace_id=request.state.trace_id)
    selected = store.selected
    draft = ProductDraft.from_product(selected) if selected else ProductDraft()
    return templates.TemplateResponse(
        request,
        "products.html",
        {"title": "Products", "store": store, "draft": draft, "editing": selected is not None, "notice": notice},
    )


@app.post("/products/submit")
async def submit_product(
    request: Request,
    id: str = Form(""),
    name: str = Form(""),
    price: str = Form(""),
    quantity: str = Form(""),
    store: ProductStore = Depends(get_store),
):
    draft = ProductDraft(id=id, name=name, price=price, quantity=quantity)
    try:
        product = await store.submit(draft, trace_id=request.state.trace_id)
    except DraftError as e:
        logger.warning("Rejected product form: {}", e)
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/submit", error_type="invalid_draft").inc()
        return back_to_products(f"Invalid product: {e}")
    except CatalogError as e:
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/submit", error_type=type(e).__name__).inc()
        return back_to_products(f"Could not save product: {e}")
    logger.info("Product {} saved", product.id)
    return back_to_products(reload_notice(store, "Product saved"))


@app.post("/products/cancel")
async def cancel_edit(store: ProductStore = Depends(get_store)):
    store.select(None)
    return back_to_products()


@app.post("/products/edit")
async def edit_product(product_id: str = Form(""), store: ProductStore = Depends(get_store)):
    product = store.get(product_id)
    if not product:
        logger.warning("Product {} not found", product_id)
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/edit", error_type="not_found").inc()
        return back_to_products("Product not found")
    store.select(product)
    return back_to_products()


@app.post("/products/delete")
async def delete_product(request: Request, product_id: str = Form(""), store: ProductStore = Depends(get_store)):
    try:
        await store.delete(product_id, trace_id=request.state.trace_id)
    except CatalogError as e:
        ERROR_COUNT.labels(service=SERVICE_NAME, endpoint="/products/delete", error_type=type(e).__name__).inc()
        return back_to_products(f"Could not delete product: {e}")
    return back_to_products(reload_notice(store, "Product deleted"))


@app.get("/cart", response_class=HTMLResponse)
async def cart_page(request: Request):
    return templates.TemplateResponse(request, "cart.html", {"title": "Cart"})


@app.get("/api/state", response_model=StoreState)
async def store_state(store: ProductStore = Depends(get_store)):
    return StoreState(
        products=store.products,
        selected=store.selected,
        loading=store.loading,
        status=store.status,
        error=store.error,
    )


if __name__ == "__main__":
    logger.info(f"Starting Storefront Service on port {config.PORT}")
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
