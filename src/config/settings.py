import os

from dotenv import load_dotenv

from src.shared.utils import get_logger

logger = get_logger(__name__)


load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Application configuration settings."""

    # Environment
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", None)
    DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))
    DB_POOL_TIMEOUT = int(os.getenv("DB_POOL_TIMEOUT", "30"))
    DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "3600"))
    DB_COMMAND_TIMEOUT = int(os.getenv("DB_COMMAND_TIMEOUT", "60"))

    # API tokens for server-to-server callers
    EXTERNAL_API_TOKEN = os.getenv("EXTERNAL_API_TOKEN", None)
    ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", None)

    # Mercado Pago
    MERCADOPAGO_ACCESS_TOKEN = os.getenv("MERCADOPAGO_ACCESS_TOKEN", None)
    MERCADOPAGO_API_URL = os.getenv("MERCADOPAGO_API_URL", "https://api.mercadopago.com")
    MERCADOPAGO_WEBHOOK_SECRET = os.getenv("MERCADOPAGO_WEBHOOK_SECRET", None)
    MERCADOPAGO_SIGNATURE_FORMAT = os.getenv("MERCADOPAGO_SIGNATURE_FORMAT", "manifest")
    MERCADOPAGO_WEBHOOK_PATH = os.getenv(
        "MERCADOPAGO_WEBHOOK_PATH", "/webhooks/mercadopago"
    )
    MERCADOPAGO_SKIP_SIGNATURE_VALIDATION = _env_flag(
        "MERCADOPAGO_SKIP_SIGNATURE_VALIDATION"
    )
    MERCADOPAGO_API_TIMEOUT = float(os.getenv("MERCADOPAGO_API_TIMEOUT", "10"))

    # Stripe
    STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET", None)
    STRIPE_SIGNATURE_TOLERANCE = int(os.getenv("STRIPE_SIGNATURE_TOLERANCE", "300"))

    # Reconciliation
    UNKNOWN_PAYMENT_REVIEW_THRESHOLD = int(
        os.getenv("UNKNOWN_PAYMENT_REVIEW_THRESHOLD", "3")
    )

    # Outbound webhooks
    OUTBOUND_WEBHOOK_TIMEOUT = float(os.getenv("OUTBOUND_WEBHOOK_TIMEOUT", "10"))
    OUTBOUND_WEBHOOK_USER_AGENT = "EduCommunity-Webhook/1.0"

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


settings = Settings()
