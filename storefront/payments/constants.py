import httpx
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.payments")

PROVIDER = "razorpay"

TRANSIENT_EXCEPTIONS = (httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError, httpx.NetworkError)
DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_BASE = 0.5
MAX_BACKOFF_SECONDS = 8.0

CONFIRMING_EVENTS = ("payment.captured", "order.paid")
AUTHORIZED_EVENT = "payment.authorized"
FAILED_EVENT = "payment.failed"

CONFIRM_APPLIED = "applied"
CONFIRM_DUPLICATE = "already_confirmed"
CONFIRM_ORDER_CANCELLED = "order_cancelled"
