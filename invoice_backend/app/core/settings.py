import os
from decimal import Decimal


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Settings:
    def __init__(self):
        self.app_name = "FlexGo Billing"
        self.api_version = "1.0.0"
        self.environment = os.getenv("ENVIRONMENT", "development")
        self.secret_key = os.getenv("SECRET_KEY", "CHANGE_ME")
        self.SECRET_KEY = self.secret_key
        self.access_token_expire_minutes = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
        self.ACCESS_TOKEN_EXPIRE_MINUTES = self.access_token_expire_minutes
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./billing.db")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173,http://127.0.0.1:5173").split(",")
            if origin.strip()
        ]

        # "header" trusts x-user-role / x-user-email, "jwt" expects a bearer token
        self.identity_provider = os.getenv("IDENTITY_PROVIDER", "header")

        self.tax_rate = Decimal(os.getenv("TAX_RATE", "0.10"))
        self.currency = os.getenv("CURRENCY", "JPY")

        self.company_name = os.getenv("COMPANY_NAME", "FLEX GO Co., Ltd.")
        self.company_address = os.getenv("COMPANY_ADDRESS", "1-2-3 Chiyoda, Tokyo 123-4567")
        self.company_phone = os.getenv("COMPANY_PHONE", "TEL: 03-1234-5678")
        self.company_email = os.getenv("COMPANY_EMAIL", "billing@flexgo.co.jp")
        self.company_registration = os.getenv("COMPANY_REGISTRATION", "T1234567890123")
        self.company_bank = os.getenv("COMPANY_BANK", "Example Bank, Main Branch, Ordinary 1234567")

        self.storage_bucket = os.getenv("STORAGE_BUCKET", "local")
        self.local_storage_path = os.getenv("LOCAL_STORAGE_PATH", "./storage")
        self.storage_prefix = os.getenv("STORAGE_PREFIX", "invoices")
        self.aws_region = os.getenv("AWS_REGION")
        self.aws_access_key_id = os.getenv("AWS_ACCESS_KEY_ID")
        self.aws_secret_access_key = os.getenv("AWS_SECRET_ACCESS_KEY")
        self.signed_url_ttl_hours = int(os.getenv("SIGNED_URL_TTL_HOURS", "168"))
        self.cleanup_dry_run = _env_bool("CLEANUP_DRY_RUN")
        self.cleanup_disabled = _env_bool("CLEANUP_DISABLED")


_settings_instance = None


def get_settings():
    """Return a singleton Settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
