from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    CLOUDINARY_API_SECRET: str = "cloudinary-secret"
    CLOUDINARY_API_KEY: str = "cloudinary-key"
    CLOUDINARY_CLOUD_NAME: str = "storefront"
    CLOUDINARY_FOLDER: str = "products"
    CLOUDINARY_TIMEOUT_SECONDS: float = 10.0

    class Config:
        env_file = ".env"
        extra="ignore"

media_settings = Settings()
