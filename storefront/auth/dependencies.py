from email_validator import validate_email, EmailNotValidError
from fastapi import HTTPException, Request, status
from storefront.auth.models import SignupIn
from storefront.auth.utils import validate_password
from storefront.schema.full_schema import UserRole
from storefront.auth.constants import logger


def normalize_email_address(email: str) -> str:
    """
    Validate and return the normalized, lowercased email.
    Raises ValueError if invalid.
    """
    try:
        v = validate_email(email.strip(), check_deliverability=False)
        return v.normalized.lower()
    except EmailNotValidError as e:
        raise ValueError(str(e))


async def signup_validation(payload: SignupIn) -> SignupIn:
    try:
        email = normalize_email_address(payload.email)
    except ValueError as e:
        logger.warning("signup.validation.email_invalid", extra={"error": str(e)})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid email: {e}")

    is_valid, detail = validate_password(payload.password)
    if not is_valid:
        logger.warning("signup.validation.password_invalid", extra={"reason": detail})
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    phone = payload.phone.strip() if payload.phone else None
    referral_code = payload.referral_code.strip().upper() if payload.referral_code else None
    return payload.model_copy(update={"email": email, "phone": phone or None,
                                      "name": payload.name.strip(), "referral_code": referral_code or None})


def current_user_id(request: Request) -> int:
    user_id = getattr(request.state, "user_id", None)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    return user_id


def is_admin(request: Request) -> bool:
    return getattr(request.state, "user_role", None) == UserRole.ADMIN.value


def require_admin(request: Request) -> int:
    user_id = current_user_id(request)
    if not is_admin(request):
        logger.warning("admin.access.denied", extra={"user_public_id": getattr(request.state, "user_public_id", None),
                                                     "path": request.url.path})
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return user_id
