from pydantic_settings import BaseSettings
from typing import List

class Settings(BaseSettings):
    SUPABASE_URL: str
    SUPABASE_KEY: str
    SUPABASE_SERVICE_KEY: str

    REDIS_URL: str = "redis://localhost:6379"

    RAZORPAY_KEY_ID: str
    RAZORPAY_KEY_SECRET: str
    RAZORPAY_BASE_URL: str = "https://api.razorpay.com"

    DEFAULT_CURRENCY: str = "INR"

    # Outbound calls to the payment processor
    REQUEST_TIMEOUT_SECONDS: float = 15.0

    OFFLINE_MAX_ATTEMPTS: int = 5
    OFFLINE_RETRY_BASE_SECONDS: int = 30
    CONNECTIVITY_PROBE_SECONDS: int = 20

    CART_EXPIRE_SECONDS: int = 43200

    CORS_ORIGINS: str = "*"

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    class Config:
        env_file = ".env"

settings = Settings()
