from decimal import Decimal

from invoice_backend.app.core.settings import Settings, get_settings


def test_settings_defaults():
    settings = get_settings()
    assert settings.app_name == "FlexGo Billing"
    assert settings.environment == "development"
    assert isinstance(settings.secret_key, str) and settings.secret_key
    assert isinstance(settings.database_url, str) and settings.database_url
    assert settings.tax_rate == Decimal("0.10")
    assert settings.currency == "JPY"
    assert settings.identity_provider == "header"
    assert settings.signed_url_ttl_hours == 168


def test_settings_read_environment(monkeypatch):
    monkeypatch.setenv("TAX_RATE", "0.08")
    monkeypatch.setenv("STORAGE_BUCKET", "flexgo-invoices")
    monkeypatch.setenv("CLEANUP_DRY_RUN", "true")
    monkeypatch.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    settings = Settings()
    assert settings.tax_rate == Decimal("0.08")
    assert settings.storage_bucket == "flexgo-invoices"
    assert settings.cleanup_dry_run is True
    assert settings.cleanup_disabled is False
    assert settings.cors_origins == ["https://a.example", "https://b.example"]
