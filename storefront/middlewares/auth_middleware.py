from typing import Sequence
from fastapi import HTTPException, Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from storefront.common.utils import build_error, json_error
from storefront.common.constants import request_id_ctx
from storefront.user.dependencies import Authentication
from storefront.user.repository import identify_user_by_pid
from storefront.middlewares.constants import logger


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """Resolves the bearer token into request.state for every non-public path."""

    def __init__(self, app, *, session_maker, paths: Sequence[str]):
        super().__init__(app)
        self.session_maker = session_maker
        self.paths = tuple(paths)

    async def dispatch(self, request: Request, call_next):

        if request.method == "OPTIONS" or request.url.path.startswith(self.paths):
            return await call_next(request)

        try:
            auth_token = await Authentication()(request)
        except HTTPException as e:
            reason = getattr(e, "detail", "Missing or Invalid Auth Headers")
            logger.warning("auth.middleware.failed", extra={
                "reason": reason,
                "path": request.url.path,
                "method": request.method
            })
            payload = build_error(code="INVALID_AUTH", message="Missing or Invalid Auth Headers",
                                  request_id=request_id_ctx.get(None))
            return json_error(payload, status_code=status.HTTP_401_UNAUTHORIZED)

        user_pid = auth_token.get("sub")

        async with self.session_maker() as session:
            user_identifier = await identify_user_by_pid(session, user_pid)

        if not user_identifier:
            logger.warning("auth.middleware.user_not_found", extra={
                "user_public_id": user_pid,
                "path": request.url.path
            })
            payload = build_error(code="INVALID_AUTH", message="User unidentified and not authorized",
                                  request_id=request_id_ctx.get(None))
            return json_error(payload, status_code=status.HTTP_401_UNAUTHORIZED)

        request.state.user_id = user_identifier["id"]
        request.state.user_public_id = user_pid
        request.state.user_role = user_identifier["role"]

        return await call_next(request)
