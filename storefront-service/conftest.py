"""
Shared fixtures: an in-memory catalog service served through httpx.MockTransport.
"""
import json
import sys
import os
from urllib.parse import unquote

import httpx
import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from catalog_client import CatalogClient
from product_store import ProductStore

BASE_URL = "http://catalog.test"


class FakeCatalog:
    """Minimal catalog service honouring the /products protocol."""

    def __init__(self, products=None):
        self.products = {p["id"]: dict(p) for p in (products or [])}
        self.requests = []
        self.offline = False
        self.list_body = None
        self.list_status = None
        self.break_list_on_write = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("Connection refused", request=request)

        raw_path = request.url.raw_path.decode("ascii").split("?")[0]
        parts = [unquote(p) for p in raw_path.strip("/").split("/")]
        if parts[0] != "products" or len(parts) > 2:
            return httpx.Response(404, json={"detail": "Not Found"})

        if len(parts) == 1:
            if request.method == "GET":
                if self.list_status is not None:
                    return httpx.Response(self.list_status, json={"detail": "Catalog unavailable"})
                if self.list_body is not None:
                    return httpx.Response(200, content=self.list_body)
                return httpx.Response(200, json=list(self.products.values()))
            if request.method == "POST":
                product = json.loads(request.content)
                if product["id"] in self.products:
                    return httpx.Response(409, json={"detail": "Product id already exists"})
                self.products[product["id"]] = product
                self._after_write()
                return httpx.Response(201, json=product)
            return httpx.Response(405, json={"detail": "Method Not Allowed"})

        product_id = parts[1]
        if product_id not in self.products:
            return httpx.Response(404, json={"detail": "Product not found"})
        if request.method == "PUT":
            product = json.loads(request.content)
            self.products[product_id] = product
            self._after_write()
            return httpx.Response(200, json=product)
        if request.method == "DELETE":
            del self.products[product_id]
            self._after_write()
            return httpx.Response(204)
        return httpx.Response(405, json={"detail": "Method Not Allowed"})

    def _after_write(self):
        if self.break_list_on_write:
            self.list_status = 500

    def methods(self):
        return [(r.method, r.url.path) for r in self.requests]


def make_client(catalog: FakeCatalog) -> CatalogClient:
    transport = httpx.MockTransport(catalog.handler)
    return CatalogClient(BASE_URL, client=httpx.AsyncClient(transport=transport))


@pytest.fixture
def catalog():
    return FakeCatalog([{"id": "1", "name": "Pen", "price": 2, "quantity": 100}])


@pytest.fixture
def catalog_client(catalog):
    return make_client(catalog)


@pytest.fixture
def store(catalog_client):
    return ProductStore(catalog_client)
