from storefront.common.logging_setup import get_logger
from storefront.schema.full_schema import OrderStatus

logger = get_logger("storefront.orders")

# forward-only progression, cancellation goes through its own flow
STATUS_RANK = {
    OrderStatus.PENDING.value: 0,
    OrderStatus.PROCESSING.value: 1,
    OrderStatus.SHIPPED.value: 2,
    OrderStatus.DELIVERED.value: 3,
}

CANCELLABLE_STATUSES = (OrderStatus.PENDING.value, OrderStatus.PROCESSING.value)

REVENUE_STATUSES = (OrderStatus.PROCESSING.value, OrderStatus.SHIPPED.value, OrderStatus.DELIVERED.value)

STATS_MONTHS = 6
TOP_PRODUCTS_LIMIT = 5
