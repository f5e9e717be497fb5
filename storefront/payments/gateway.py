import asyncio
import hashlib
import hmac
from typing import Optional
import httpx
from fastapi import Request
from storefront.config.settings import config_settings
from storefront.payments.constants import (DEFAULT_BACKOFF_BASE, DEFAULT_RETRIES, MAX_BACKOFF_SECONDS,
                                           TRANSIENT_EXCEPTIONS, logger)


class GatewayError(Exception):
    def __init__(self, message: str, retryable: bool = False, status_code: Optional[int] = None):
        super().__init__(message)
        self.retryable = retryable
        self.status_code = status_code


def hmac_sha256_hex(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode(), message, hashlib.sha256).hexdigest()


class RazorpayGateway:
    """
    Server side Razorpay client. Built once per process and shared through app.state,
    it owns one pooled httpx client authenticated with the key pair.
    """

    def __init__(self, key_id: str, key_secret: str, webhook_secret: str, base_url: str,
                 timeout: float = 10.0, max_retries: int = DEFAULT_RETRIES,
                 backoff_base: float = DEFAULT_BACKOFF_BASE, client: Optional[httpx.AsyncClient] = None):
        self.key_id = key_id
        self._key_secret = key_secret
        self._webhook_secret = webhook_secret
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._client = client or httpx.AsyncClient(timeout=timeout, auth=(key_id, key_secret))

    async def _post_order(self, payload: dict, headers: dict) -> dict:
        resp = await self._client.post(f"{self.base_url}/orders", json=payload, headers=headers)
        resp.raise_for_status()
        return resp.json()

    async def create_order(self, amount_paise: int, currency: str, receipt: str,
                           notes: Optional[dict] = None, idempotency_key: Optional[str] = None) -> dict:
        """
        Creates the provider side order. Network errors and 5xx responses are retried with
        exponential backoff, 4xx responses surface immediately.
        """
        headers = {"Content-Type": "application/json"}
        if idempotency_key:
            headers["Idempotency-Key"] = str(idempotency_key)
        payload = {"amount": amount_paise, "currency": currency, "receipt": receipt, "notes": notes or {}}

        last_exc: Optional[Exception] = None
        for attempt in range(1, self.max_retries + 1):
            try:
                return await self._post_order(payload, headers)
            except TRANSIENT_EXCEPTIONS as ex:
                last_exc = ex
                logger.warning("payment.gateway.transient_error", extra={"attempt": attempt, "error": str(ex)})
            except httpx.HTTPStatusError as ex:
                status_code = ex.response.status_code
                if 500 <= status_code < 600:
                    last_exc = ex
                    logger.warning("payment.gateway.server_error", extra={"attempt": attempt, "status_code": status_code})
                else:
                    logger.error("payment.gateway.rejected", extra={"status_code": status_code, "body": ex.response.text[:500]})
                    raise GatewayError(f"Payment provider rejected the request ({status_code})",
                                       retryable=False, status_code=status_code) from ex

            if attempt < self.max_retries:
                await asyncio.sleep(min(self.backoff_base * (2 ** (attempt - 1)), MAX_BACKOFF_SECONDS))

        raise GatewayError("Payment provider unreachable", retryable=True) from last_exc

    def verify_payment_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        if not (gateway_order_id and gateway_payment_id and signature):
            return False
        expected = hmac_sha256_hex(self._key_secret, f"{gateway_order_id}|{gateway_payment_id}".encode())
        return hmac.compare_digest(expected, signature)

    def verify_webhook_signature(self, body: bytes, signature: Optional[str]) -> bool:
        if not signature:
            return False
        expected = hmac_sha256_hex(self._webhook_secret, body)
        return hmac.compare_digest(expected, signature)

    async def aclose(self):
        await self._client.aclose()


def build_payment_gateway() -> RazorpayGateway:
    return RazorpayGateway(
        key_id=config_settings.RZPAY_KEY,
        key_secret=config_settings.RZPAY_SECRET,
        webhook_secret=config_settings.RAZORPAY_WEBHOOK_SECRET,
        base_url=config_settings.RZPAY_GATEWAY_URL,
        timeout=config_settings.RZPAY_TIMEOUT_SECONDS,
    )


def get_payment_gateway(request: Request) -> RazorpayGateway:
    return request.app.state.payment_gateway
