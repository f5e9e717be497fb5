from fastapi import Request,HTTPException,status
from fastapi.security import HTTPBearer

from storefront.auth.utils import decode_token


class Authentication(HTTPBearer):
    def __init__(self,auto_error=True):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request:Request) -> dict:
        auth_creds=await super().__call__(request)
        if auth_creds is None:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,detail="Not authenticated")

        decoded_token=decode_token(auth_creds.credentials)

        if not decoded_token or not decoded_token.get("sub"):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED,detail="Invalid or expired token provided.")

        return decoded_token
