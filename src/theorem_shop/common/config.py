"""theorem-shop configuration via pydantic-settings."""

import warnings
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_SECRET_KEY = "insecure-dev-key-change-me"

FULFILLMENT_TRIGGERS = ("webhook_only", "direct_and_webhook_deduped")

# Stripe currencies whose minor unit is not 1/100
NON_CENT_CURRENCIES = frozenset({
    "bif", "clp", "djf", "gnf", "jpy", "kmf", "krw", "mga", "pyg", "rwf",
    "ugx", "vnd", "vuv", "xaf", "xof", "xpf",
    "bhd", "jod", "kwd", "omr", "tnd",
})


class ShopSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="THEOREM_")

    environment: str = "development"
    secret_key: str = _INSECURE_SECRET_KEY
    log_level: str = "INFO"

    # API
    api_title: str = "theorem-shop"
    api_version: str = "0.1.0"
    api_prefix: str = ""
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: list[str] = ["http://localhost:3000"]
    base_url: str = "http://localhost:3000"
    shop_name: str = "Zeeshan Maths"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    currency: str = "usd"

    # Email: "sendgrid" or "resend"
    email_provider: str = ""
    email_api_key: str = ""
    email_from: str = "notes@example.com"
    email_from_name: str = "Zeeshan Maths"

    # Cloudflare R2 (S3-compatible)
    r2_account_id: str = ""
    r2_access_key_id: str = ""
    r2_secret_access_key: str = ""
    r2_bucket_name: str = ""
    r2_endpoint_url: str = ""

    # Comma-separated list of addresses allowed to request admin magic links
    admin_emails: str = ""

    # Verification codes
    code_ttl_seconds: int = 600
    code_max_attempts: int = 3

    # Rate limits (requests per window, per client)
    issue_rate_limit: int = 3
    verify_rate_limit: int = 5
    rate_limit_window_seconds: int = 600

    # Fulfillment
    download_link_ttl_seconds: int = 7 * 24 * 3600
    fulfillment_trigger: str = "webhook_only"

    # Stripe caps metadata values at 500 characters
    metadata_chunk_size: int = 500
    metadata_title_max: int = 40

    sweep_interval_seconds: int = 300

    # Admin login
    magic_link_ttl_seconds: int = 900
    admin_session_ttl_seconds: int = 86400
    nonce_retention_seconds: int = 1800

    @field_validator("currency")
    @classmethod
    def two_decimal_currency(cls, value: str) -> str:
        value = value.strip().lower()
        if len(value) != 3 or not value.isalpha():
            raise ValueError(f"Not an ISO 4217 currency code: {value!r}")
        if value in NON_CENT_CURRENCIES:
            raise ValueError(f"Only two-decimal currencies are supported, got: {value!r}")
        return value

    @property
    def admin_email_list(self) -> list[str]:
        """Return the admin allow-list, normalized to lower case."""
        return [
            e.strip().lower() for e in self.admin_emails.split(",") if e.strip()
        ]

    @property
    def r2_endpoint(self) -> str:
        if self.r2_endpoint_url:
            return self.r2_endpoint_url
        return f"https://{self.r2_account_id}.r2.cloudflarestorage.com"

    @property
    def direct_fulfillment_enabled(self) -> bool:
        return self.fulfillment_trigger == "direct_and_webhook_deduped"

    def validate_for_production(self) -> None:
        """Raise if the configuration is unsafe for a non-development environment."""
        if self.fulfillment_trigger not in FULFILLMENT_TRIGGERS:
            raise RuntimeError(
                f"THEOREM_FULFILLMENT_TRIGGER must be one of {', '.join(FULFILLMENT_TRIGGERS)}, "
                f"got: {self.fulfillment_trigger!r}"
            )

        if self.environment == "development":
            if self.secret_key == _INSECURE_SECRET_KEY:
                warnings.warn(
                    "Using insecure default secret key — set THEOREM_SECRET_KEY for production",
                    UserWarning,
                    stacklevel=2,
                )
            return

        problems = []
        if self.secret_key == _INSECURE_SECRET_KEY:
            problems.append("THEOREM_SECRET_KEY is the insecure default")
        if not self.stripe_secret_key:
            problems.append("THEOREM_STRIPE_SECRET_KEY is not set")
        if not self.stripe_webhook_secret:
            problems.append("THEOREM_STRIPE_WEBHOOK_SECRET is not set")
        if self.fulfillment_trigger != "webhook_only":
            problems.append("THEOREM_FULFILLMENT_TRIGGER must be 'webhook_only'")

        if problems:
            raise RuntimeError(
                f"Unsafe configuration for '{self.environment}' environment: "
                + "; ".join(problems)
                + ". Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )


@lru_cache
def get_settings() -> ShopSettings:
    settings = ShopSettings()
    settings.validate_for_production()
    return settings
