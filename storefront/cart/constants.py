from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.cart")

MAX_LINE_QTY = 1000
