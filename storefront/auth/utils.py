from datetime import datetime, timedelta, timezone
import secrets
import string
from passlib.context import CryptContext
from jose import jwt, JWTError
from storefront.config.settings import config_settings
from storefront.auth.constants import PASSWORD_MIN_LENGTH, REFERRAL_CODE_LENGTH, REFERRAL_CODE_PREFIX

ACCESS_TOKEN_EXPIRE_MINUTES = int(config_settings.ACCESS_TOKEN_EXPIRE_MINUTES)

pwd_context = CryptContext(schemes=[config_settings.PASS_HASH_SCHEME], deprecated="auto")

CODE_ALPHABET = string.ascii_uppercase + string.digits

def hash_password(plain_password: str) -> str:
    return pwd_context.hash(plain_password)

def verify_password(plain_password: str, password_hash: str) -> bool:
    return pwd_context.verify(plain_password, password_hash)


def validate_password(password: str, min_length: int = PASSWORD_MIN_LENGTH) -> tuple[bool, str]:
    pw = password.strip()
    if len(pw) < min_length:
        return False, f"Password must be at least {min_length} characters long"
    if not any(c.isalpha() for c in pw):
        return False, "Password must include at least one letter"
    if not any(c.isdigit() for c in pw):
        return False, "Password must include at least one digit"
    return True, "OK"


def create_access_token(user_public_id, role: str, expires_dur: int = ACCESS_TOKEN_EXPIRE_MINUTES) -> str:
    now=datetime.now(timezone.utc)
    expiry= now + timedelta(minutes=expires_dur)

    payload = {
        "sub": str(user_public_id),
        "iat": int(now.timestamp()),
        "exp": int(expiry.timestamp()),
        "jti": secrets.token_hex(16),
        "role": role,
    }
    return jwt.encode(claims=payload,key=config_settings.JWT_SECRET,algorithm=config_settings.JWT_ALGO)


def decode_token(token:str):
    """Verifies signature and expiry, returns the claims or None."""
    try:
        return jwt.decode(
            token,
            key=config_settings.JWT_SECRET,
            algorithms=[config_settings.JWT_ALGO]
        )
    except JWTError:
        return None


def random_code(length: int) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def generate_referral_code() -> str:
    return f"{REFERRAL_CODE_PREFIX}-{random_code(REFERRAL_CODE_LENGTH)}"
