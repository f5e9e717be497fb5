from pydantic_settings import BaseSettings

class Settings(BaseSettings):

    ENV: str = "dev"                # "dev" / "staging" / "prod"
    SERVICE_NAME: str = "storefront"
    ENABLE_ADMIN: bool = True
    ENABLE_METRICS: bool = False

    DATABASE_URL: str = "sqlite+aiosqlite:///./storefront.db"
    DB_ECHO: bool = False

    JWT_SECRET: str = "dev-jwt-secret-change-me"
    JWT_ALGO: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 7 * 24 * 60
    PASS_HASH_SCHEME: str = "bcrypt"

    RZPAY_KEY: str = "rzp_test_key"
    RZPAY_SECRET: str = "rzp_test_secret"
    RZPAY_GATEWAY_URL: str = "https://api.razorpay.com/v1"
    RAZORPAY_WEBHOOK_SECRET: str = "rzp_webhook_secret"
    RZPAY_TIMEOUT_SECONDS: float = 10.0
    CURRENCY: str = "INR"

    WELCOME_COUPON_CODE: str = "WELCOME50"
    WALLET_COUPON_VALID_DAYS: int = 30
    REFERRAL_REWARD: int = 0

    DEFAULT_LOW_STOCK_THRESHOLD: int = 10
    CURSOR_SECRET: str = "dev-cursor-secret-change-me"
    PAGE_SIZE_DEFAULT: int = 20
    PAGE_SIZE_MAX: int = 100

    class Config:
        env_file = ".env"
        extra="ignore"

config_settings = Settings()
