from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.products")

CURSOR_TTL_SECONDS = 3600
SLUG_MAX_LENGTH = 280
