from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import  AsyncSession
from storefront.auth.dependencies import signup_validation
from storefront.auth.models import SignIn, SignupIn
from storefront.auth.services import authenticate_user, create_user
from storefront.auth.utils import create_access_token
from storefront.common.utils import success_response
from storefront.db.dependencies import get_session
from storefront.user.services import serialize_user
from storefront.auth.constants import logger

auth_router = APIRouter()


@auth_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(payload: SignupIn = Depends(signup_validation), session: AsyncSession = Depends(get_session)):

    logger.info("signup.attempt")

    user = await create_user(session, payload)
    access = create_access_token(user.public_id, user.role)

    logger.info("signup.success", extra={"user_public_id": str(user.public_id)})
    return success_response({"user": serialize_user(user), "access_token": access}, 201)


@auth_router.post("/login")
async def login_user(payload: SignIn, session: AsyncSession = Depends(get_session)):

    logger.info("login.attempt")

    user, access = await authenticate_user(session, payload)

    logger.info("login.success", extra={"user_public_id": str(user.public_id)})
    return success_response({"access_token": access, "token_type": "bearer", "user": serialize_user(user)}, 200)
