from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.auth")

REFERRAL_CODE_PREFIX = "REF"
REFERRAL_CODE_LENGTH = 6

PASSWORD_MIN_LENGTH = 8
