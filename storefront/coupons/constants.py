from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.coupons")

WALLET_COUPON_PREFIX = "WALLET"
COUPON_CODE_LENGTH = 8
