# settings for the storefront, read once from the environment (and .env if present)
import os

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


API_URL = os.getenv("STOREFRONT_API_URL", "https://dummyjson.com").rstrip("/")
DB_PATH = os.getenv("STOREFRONT_DB_PATH", "data/storefront.sqlite")
HTTP_TIMEOUT = _env_float("STOREFRONT_HTTP_TIMEOUT", 10.0)

# remote tokens expire after this many minutes; only passed through to the API
TOKEN_TTL_MINS = int(_env_float("STOREFRONT_TOKEN_TTL_MINS", 30))

TAX_RATE = _env_float("STOREFRONT_TAX_RATE", 0.08)
SHIPPING_FEE = _env_float("STOREFRONT_SHIPPING_FEE", 10.0)
FREE_SHIPPING_OVER = _env_float("STOREFRONT_FREE_SHIPPING_OVER", 100.0)

DEBUG = bool(os.getenv("DEBUG"))
