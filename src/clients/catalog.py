# read-only product catalog client, no auth
import asyncio
from typing import Any, Dict, List, Optional

import requests

from db.models import CatalogPage, Product
from utils import config
from utils.errors import NetworkUnavailable
from utils.logger import get_logger

_logger = get_logger(__name__)

# storefront menu names -> catalog categories
CATEGORY_MAP = {
    "mens": "mens-shirts",
    "womens": "womens-dresses",
    "girls": "womens-shoes",
    "boys": "mens-shoes",
    "beauty": "beauty",
    "accessories": "womens-bags",
    "others": "home-decoration",
    "car": "automotive",
}


def _page(data: Dict[str, Any]) -> CatalogPage:
    products: List[Product] = []
    for raw in data.get("products") or []:
        try:
            products.append(Product.from_api(raw))
        except (KeyError, TypeError, ValueError) as e:
            _logger.warning(f"Skipping malformed catalog product: {e}")
    return CatalogPage(products=products, total=int(data.get("total", len(products))))


class CatalogClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = (base_url or config.API_URL).rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT
        self._http = session or requests.Session()

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Any]:
        """GET and decode JSON. Returns None on 404; other failures raise NetworkUnavailable."""
        try:
            response = self._http.get(
                f"{self.base_url}{path}", params=params, timeout=self.timeout
            )
        except requests.RequestException as e:
            _logger.error(f"Error fetching {path}: {type(e).__name__}")
            raise NetworkUnavailable("Failed to load products. Please try again.") from e
        if response.status_code == 404:
            return None
        if not response.ok:
            _logger.error(f"Error fetching {path}: HTTP {response.status_code}")
            raise NetworkUnavailable(
                "Failed to load products. Please try again.", status=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise NetworkUnavailable("Unexpected response from catalog.") from e

    def _get_page(self, path: str, params: Optional[Dict[str, Any]] = None) -> CatalogPage:
        data = self._get(path, params)
        return _page(data) if isinstance(data, dict) else CatalogPage()

    async def list_products(self, limit: int = 30, skip: int = 0) -> CatalogPage:
        return await asyncio.to_thread(
            self._get_page, "/products", {"limit": limit, "skip": skip}
        )

    async def get_product(self, product_id: int) -> Optional[Product]:
        data = await asyncio.to_thread(self._get, f"/products/{int(product_id)}")
        if not isinstance(data, dict):
            return None
        return Product.from_api(data)

    async def products_by_category(self, category: str) -> CatalogPage:
        category = CATEGORY_MAP.get(category, category)
        return await asyncio.to_thread(self._get_page, f"/products/category/{category}")

    async def search(self, query: str) -> CatalogPage:
        query = (query or "").strip()
        if not query:
            return await self.list_products()
        return await asyncio.to_thread(self._get_page, "/products/search", {"q": query})

    async def categories(self) -> List[str]:
        data = await asyncio.to_thread(self._get, "/products/categories")
        names = []
        for entry in data or []:
            # newer API returns {slug, name, url}, older a bare string
            names.append(entry.get("slug", "") if isinstance(entry, dict) else str(entry))
        return [n for n in names if n]
