from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from storefront.auth.models import SignIn, SignupIn
from storefront.auth.repository import insert_user, unique_referral_code
from storefront.auth.utils import create_access_token, hash_password, verify_password
from storefront.auth.dependencies import normalize_email_address
from storefront.config.settings import config_settings
from storefront.user.repository import credit_wallet, email_or_phone_taken, get_user_by_email, user_id_by_referral_code
from storefront.auth.constants import logger


async def create_user(session, payload: SignupIn):

    if await email_or_phone_taken(session, payload.email, payload.phone):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    referrer_id = None
    if payload.referral_code:
        referrer_id = await user_id_by_referral_code(session, payload.referral_code)
        if referrer_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid referral code")

    referral_code = await unique_referral_code(session)

    try:
        user = await insert_user(
            session,
            name=payload.name,
            email=payload.email,
            phone=payload.phone,
            password_hash=hash_password(payload.password),
            referral_code=referral_code,
            referred_by=payload.referral_code if referrer_id else None,
        )
    except IntegrityError:
        # lost a race with a concurrent signup for the same email/phone
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User already exists")

    if referrer_id and config_settings.REFERRAL_REWARD > 0:
        await credit_wallet(session, referrer_id, config_settings.REFERRAL_REWARD)
        logger.info("signup.referral.credited", extra={"referrer_id": referrer_id,
                                                        "amount": config_settings.REFERRAL_REWARD})

    await session.commit()
    return user


async def authenticate_user(session, payload: SignIn):
    try:
        email = normalize_email_address(payload.email)
    except ValueError:
        email = payload.email.strip().lower()

    user = await get_user_by_email(session, email)
    if not user or not verify_password(payload.password, user.password_hash):
        logger.warning("login.failed", extra={"reason": "invalid_credentials"})
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    return user, create_access_token(user.public_id, user.role)
