"""
Base Django settings for the seat billing backend.

Shared configuration for all environments.
"""

from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings

from apps.core.logging import configure_logging


class SeatTierSettings(BaseModel):
    """One progressive pricing tier. Prices are EUR per seat."""

    min_seats: int
    max_seats: int
    monthly_price: Decimal
    yearly_price: Decimal
    stripe_monthly_price_id: str = ""
    stripe_yearly_price_id: str = ""


DEFAULT_SEAT_PRICING_TIERS = [
    SeatTierSettings(
        min_seats=1,
        max_seats=20,
        monthly_price=Decimal("35"),
        yearly_price=Decimal("420"),
        stripe_monthly_price_id="price_seat_tier1_monthly",
        stripe_yearly_price_id="price_seat_tier1_yearly",
    ),
    SeatTierSettings(
        min_seats=21,
        max_seats=50,
        monthly_price=Decimal("32"),
        yearly_price=Decimal("384"),
        stripe_monthly_price_id="price_seat_tier2_monthly",
        stripe_yearly_price_id="price_seat_tier2_yearly",
    ),
    SeatTierSettings(
        min_seats=51,
        max_seats=100,
        monthly_price=Decimal("29"),
        yearly_price=Decimal("348"),
        stripe_monthly_price_id="price_seat_tier3_monthly",
        stripe_yearly_price_id="price_seat_tier3_yearly",
    ),
]


class Settings(BaseSettings):
    """Environment-based configuration using pydantic-settings."""

    SECRET_KEY: str = "django-insecure-change-me-in-production"
    DEBUG: bool = False
    ALLOWED_HOSTS: list[str] = []

    DATABASE_NAME: str = "seatbill"
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = "postgres"
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: str = "5432"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    # Signed bearer tokens issued by the auth collaborator
    SESSION_TOKEN_MAX_AGE: int = 60 * 60 * 12

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""

    # Used for default checkout redirect URLs
    SITE_URL: str = "http://localhost:8080"

    # Seat pricing. Existing subscriptions stay on the Stripe prices they were
    # created with, so bump the version whenever the tier table changes.
    SEAT_PRICING_VERSION: str = "2025-11"
    SEAT_PRICING_TIERS: list[SeatTierSettings] = DEFAULT_SEAT_PRICING_TIERS
    SEAT_CHANGE_MAX_ATTEMPTS: int = 3

    model_config = {"env_file": ".env", "extra": "ignore"}

    @field_validator("SEAT_PRICING_TIERS")
    @classmethod
    def validate_tiers(cls, tiers: list[SeatTierSettings]) -> list[SeatTierSettings]:
        """Tiers must start at one seat, be contiguous, and never get more expensive."""
        if not tiers:
            raise ValueError("At least one seat pricing tier is required")
        if tiers[0].min_seats != 1:
            raise ValueError("The first seat pricing tier must start at 1 seat")

        previous: SeatTierSettings | None = None
        for tier in tiers:
            if tier.max_seats < tier.min_seats:
                raise ValueError(f"Tier {tier.min_seats}-{tier.max_seats} is empty")
            if previous is not None:
                if tier.min_seats != previous.max_seats + 1:
                    raise ValueError(
                        f"Tier starting at {tier.min_seats} does not follow "
                        f"tier ending at {previous.max_seats}"
                    )
                if tier.monthly_price > previous.monthly_price:
                    raise ValueError("Monthly per-seat price must not increase with volume")
                if tier.yearly_price > previous.yearly_price:
                    raise ValueError("Yearly per-seat price must not increase with volume")
            previous = tier
        return tiers


settings = Settings()

configure_logging(json_format=settings.LOG_JSON, log_level=settings.LOG_LEVEL)

# Build paths inside the project like this: BASE_DIR / 'subdir'.
BASE_DIR = Path(__file__).resolve().parent.parent.parent

# SECURITY WARNING: keep the secret key used in production secret!
SECRET_KEY = settings.SECRET_KEY

# SECURITY WARNING: don't run with debug turned on in production!
DEBUG = settings.DEBUG

ALLOWED_HOSTS = settings.ALLOWED_HOSTS

# Application definition
INSTALLED_APPS = [
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Local apps
    "apps.core",
    "apps.organizations",
    "apps.accounts",
    "apps.billing",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "apps.core.middleware.AuthContextMiddleware",
]

ROOT_URLCONF = "config.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "config.wsgi.application"

AUTH_USER_MODEL = "accounts.User"

# Database
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": settings.DATABASE_NAME,
        "USER": settings.DATABASE_USER,
        "PASSWORD": settings.DATABASE_PASSWORD,
        "HOST": settings.DATABASE_HOST,
        "PORT": settings.DATABASE_PORT,
    }
}

# Logging is configured by structlog above
LOGGING_CONFIG = None

# Password validation
AUTH_PASSWORD_VALIDATORS = [
    {"NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"},
    {"NAME": "django.contrib.auth.password_validation.MinimumLengthValidator"},
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Internationalization
LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

# Static files (CSS, JavaScript, Images)
STATIC_URL = "static/"

# Default primary key field type
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Billing
SEAT_PRICING_VERSION = settings.SEAT_PRICING_VERSION
SEAT_PRICING_TIERS = settings.SEAT_PRICING_TIERS
SEAT_CHANGE_MAX_ATTEMPTS = settings.SEAT_CHANGE_MAX_ATTEMPTS
SESSION_TOKEN_MAX_AGE = settings.SESSION_TOKEN_MAX_AGE
SITE_URL = settings.SITE_URL
