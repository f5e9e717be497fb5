import base64
import hashlib
import hmac
import json
import re
import time
import unicodedata
from typing import Optional

from storefront.config.settings import config_settings
from storefront.products.constants import CURSOR_TTL_SECONDS, SLUG_MAX_LENGTH

CURSOR_SECRET = config_settings.CURSOR_SECRET.encode()

def _sign(payload_bytes: bytes) -> str:
    sig = hmac.new(CURSOR_SECRET, payload_bytes, hashlib.sha256).digest()
    return base64.urlsafe_b64encode(sig).decode().rstrip("=")


def encode_cursor(last_id: int, ttl_seconds: int = CURSOR_TTL_SECONDS) -> str:
    payload = {"t": int(time.time()), "ttl": ttl_seconds, "s": int(last_id)}
    raw_bytes = json.dumps(payload, separators=(",", ":")).encode()
    bytes_encoded = base64.urlsafe_b64encode(raw_bytes).decode().rstrip("=")
    return f"{bytes_encoded}.{_sign(raw_bytes)}"


def decode_cursor(token: str, max_age: Optional[int] = CURSOR_TTL_SECONDS) -> int:
    try:
        token_part, sig_part = token.split(".")
    except ValueError:
        raise ValueError("Invalid cursor format")
    padded = token_part + "=" * ((4 - len(token_part) % 4) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded)
    except (ValueError, TypeError):
        raise ValueError("Invalid cursor format")
    if not hmac.compare_digest(_sign(raw), sig_part):
        raise ValueError("Cursor signature mismatch")
    payload = json.loads(raw.decode())
    if max_age is not None and int(time.time()) - payload.get("t", 0) > max_age:
        raise ValueError("Cursor expired")
    return int(payload["s"])


def slugify(text: str) -> str:
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode()
    slug = re.sub(r"[^a-zA-Z0-9]+", "-", normalized).strip("-").lower()
    return slug[:SLUG_MAX_LENGTH] or "product"
