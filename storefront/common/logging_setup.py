import json
import logging
import re
import sys
from logging.handlers import QueueHandler, QueueListener
from queue import Queue
from typing import Any, Dict, Optional
from storefront.config.settings import config_settings
from storefront.common.constants import request_id_ctx

ENV = config_settings.ENV.lower()
IS_DEV = ENV == "dev"

# substrings of field names whose values never reach the log sink
REDACT_KEYS = (
    "password", "secret", "token", "authorization", "api_key",
    "signature", "pwd_hash", "key_secret",
)

# identifiers kept recognisable but shortened outside dev
MASKED_IDS = ("user_public_id", "gateway_order_id", "gateway_payment_id", "provider_event_id")

_LOGRECORD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime", "taskName"}

_NOISY_LOGGERS = {
    "uvicorn.access": logging.INFO if IS_DEV else logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "aiosqlite": logging.WARNING,
    "httpx": logging.WARNING,
}

_KV_PATTERNS = [
    (re.compile(rf'("{k}"\s*:\s*")[^"]+(")', re.IGNORECASE), r"\1[REDACTED]\2") for k in REDACT_KEYS
] + [
    (re.compile(rf"({k}\s*[=:]\s*)[\w\-\./]+", re.IGNORECASE), r"\1[REDACTED]") for k in REDACT_KEYS
]


def redact_text(text: str) -> str:
    for pattern, repl in _KV_PATTERNS:
        text = pattern.sub(repl, text)
    return text


def _mask(value: Any) -> str:
    s = str(value)
    return f"{s[:8]}...{s[-4:]}" if len(s) > 12 else f"{s[:8]}..."


def _record_extras(record: logging.LogRecord) -> Dict[str, Any]:
    extras = {}
    for key, value in record.__dict__.items():
        if key in _LOGRECORD_ATTRS or key.startswith("_"):
            continue
        lowered = key.lower()
        if any(k in lowered for k in REDACT_KEYS):
            value = "[REDACTED]"
        elif key in MASKED_IDS and not IS_DEV and value is not None:
            value = _mask(value)
        extras[key] = value
    return extras


class JSONFormatter(logging.Formatter):
    """One JSON object per line: the event name as message plus every structured extra."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S%z"),
            "level": record.levelname,
            "logger": record.name,
            "event": redact_text(record.getMessage()),
            "service": config_settings.SERVICE_NAME,
            "env": ENV,
            "where": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        entry.update(_record_extras(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Readable single line with the structured extras appended as key=value."""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)-7s %(name)s | %(message)s", datefmt="%H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        extras = _record_extras(record)
        if extras:
            line += " | " + " ".join(f"{k}={v}" for k, v in extras.items())
        return line


class SecurityFilter(logging.Filter):
    """Scrubs secrets out of interpolated message text before it is formatted."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.msg = redact_text(record.getMessage())
        record.args = ()
        return True


_listener: Optional[QueueListener] = None


def setup_logging() -> logging.Logger:
    """
    Routes every logger through a QueueHandler so request handlers never block on the sink.
    A single QueueListener thread drains the queue to stdout. Safe to call again, the previous
    listener is stopped and the root handlers replaced.
    """
    global _listener
    shutdown_logging()

    sink = logging.StreamHandler(sys.stdout)
    if IS_DEV:
        sink.setFormatter(DevFormatter())
    else:
        sink.setFormatter(JSONFormatter())
        sink.addFilter(SecurityFilter())

    queue: Queue = Queue(-1)
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.addHandler(QueueHandler(queue))
    root.setLevel(logging.DEBUG if IS_DEV else logging.INFO)

    for name, level in _NOISY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)

    _listener = QueueListener(queue, sink, respect_handler_level=True)
    _listener.start()
    return logging.getLogger("storefront.app")


def shutdown_logging():
    global _listener
    if _listener is not None:
        _listener.stop()
        _listener = None


class ContextLogger(logging.LoggerAdapter):
    """Stamps the current request id onto every record's extra."""

    def process(self, msg, kwargs):
        extra = dict(kwargs.get("extra") or {})
        rid = request_id_ctx.get()
        if rid:
            extra.setdefault("request_id", rid)
        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str = "storefront.app") -> ContextLogger:
    return ContextLogger(logging.getLogger(name), {})
