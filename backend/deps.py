import logging
import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env from root directory (parent of backend/)
root_env = Path(__file__).parent.parent / ".env"
load_dotenv(root_env)
load_dotenv()  # Also try local .env as fallback

from catalog import CatalogResolver
from config import coalescing_enabled
from mockup_cache import MockupCacheStore
from mockup_generator import InflightRequests, MockupGenerator
from printify import PrintifyAPI

logger = logging.getLogger(__name__)


def _load_catalog() -> CatalogResolver:
    catalog_file = os.getenv("CATALOG_FILE")
    if not catalog_file:
        return CatalogResolver()
    try:
        return CatalogResolver.from_json(Path(catalog_file).read_text())
    except (OSError, ValueError, KeyError) as e:
        logger.warning("Could not load catalog from %s: %s", catalog_file, e)
        return CatalogResolver()


# Service singletons
printify = PrintifyAPI()
if not printify.is_configured:
    logger.warning("PRINTIFY_API_TOKEN / PRINTIFY_SHOP_ID not set. Requests must carry merchant credentials.")

mockup_cache = MockupCacheStore()
mockup_service = MockupGenerator(
    printify,
    mockup_cache,
    inflight=InflightRequests() if coalescing_enabled() else None,
)
catalog = _load_catalog()
