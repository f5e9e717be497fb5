from prometheus_fastapi_instrumentator import Instrumentator, metrics
from storefront.api import version_prefix

instrumentator = Instrumentator(
    should_ignore_untemplated=True,      # /orders/123 → /orders/{order_id}
    excluded_handlers=["/metrics", f"{version_prefix}/health"],
    should_instrument_requests_inprogress=True,
    should_group_status_codes=False,
)

instrumentator.add(metrics.default(metric_namespace="storefront"))
instrumentator.add(metrics.request_size(metric_namespace="storefront"))
instrumentator.add(metrics.response_size(metric_namespace="storefront"))


def setup_metrics(app):
    instrumentator.instrument(app).expose(app, endpoint="/metrics", include_in_schema=False)
