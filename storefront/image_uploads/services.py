import secrets
import time
from typing import Optional

import httpx
from cloudinary.utils import api_sign_request
from storefront.common.logging_setup import get_logger

logger = get_logger("storefront.images")


class ImageStore:
    """Cloudinary-backed image storage: signs direct browser uploads and deletes by storage key."""

    def __init__(self, cloud_name: str, api_key: str, api_secret: str, folder: str = "products",
                 timeout: float = 10.0, client: Optional[httpx.AsyncClient] = None):
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.folder = folder
        self.base_url = f"https://api.cloudinary.com/v1_1/{cloud_name}/image"
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}/upload"

    def build_upload_params(self, product_public_id, expires_in: int = 300) -> dict:
        timestamp = int(time.time())
        public_id = f"{product_public_id}_{secrets.token_hex(8)}"
        params_to_sign = {
            "public_id": public_id,
            "folder": self.folder,
            "timestamp": str(timestamp),
            "unique_filename": "false",
            "overwrite": "false",
        }
        signature = api_sign_request(params_to_sign, self.api_secret)
        return {
            "provider": "cloudinary",
            "upload_url": self.upload_url,
            "params": {
                "api_key": self.api_key,
                "timestamp": timestamp,
                "signature": signature,
                "public_id": public_id,
                "folder": self.folder,
                "unique_filename": False,
                "overwrite": False,
            },
            "storage_key": f"{self.folder}/{public_id}",
            "expires_in": expires_in,
        }

    async def destroy(self, storage_key: str) -> bool:
        timestamp = str(int(time.time()))
        params = {"public_id": storage_key, "timestamp": timestamp}
        signature = api_sign_request(params, self.api_secret)
        data = {**params, "api_key": self.api_key, "signature": signature}
        try:
            resp = await self._client.post(f"{self.base_url}/destroy", data=data)
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            # remote cleanup failures never fail the request
            logger.warning("image.destroy.failed", extra={"storage_key": storage_key, "error": str(exc)})
            return False
        ok = resp.json().get("result") == "ok"
        if not ok:
            logger.warning("image.destroy.not_found", extra={"storage_key": storage_key})
        return ok

    async def aclose(self):
        await self._client.aclose()
