import logging
import os
from typing import Mapping, Optional

import structlog
from pydantic import BaseModel, Field

DEFAULT_JWT_SECRET = "your-secret-key"


class Settings(BaseModel):
    """Process configuration, built once at startup and passed to create_app."""

    database_url: Optional[str] = Field(None, description="MongoDB connection string")
    database_name: str = Field("glams")
    paystack_secret: Optional[str] = Field(None, description="Paystack secret key")
    paystack_base_url: str = Field("https://api.paystack.co")
    frontend_url: str = Field("http://localhost:5173", description="Storefront origin, used for CORS and the payment callback")
    public_url: str = Field("http://localhost:8000", description="Base URL this API is reachable on")
    port: int = Field(8000)
    jwt_secret: str = Field(DEFAULT_JWT_SECRET)
    jwt_ttl_hours: int = Field(24, ge=1)
    delivery_fee: float = Field(2000, ge=0, description="Home delivery fee in NGN")
    analytics_cache_ttl: float = Field(20 * 60, ge=0, description="Seconds")
    log_level: str = Field("INFO")
    admin_email: Optional[str] = None
    admin_password: Optional[str] = None

    @property
    def callback_url(self) -> str:
        return f"{self.frontend_url.rstrip('/')}/checkout"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        mapping = {
            "database_url": "DATABASE_URL",
            "database_name": "DATABASE_NAME",
            "paystack_secret": "PAYSTACK_SECRET",
            "paystack_base_url": "PAYSTACK_BASE_URL",
            "frontend_url": "FRONTEND_URL",
            "public_url": "PUBLIC_URL",
            "port": "PORT",
            "jwt_secret": "JWT_SECRET",
            "jwt_ttl_hours": "JWT_TTL_HOURS",
            "delivery_fee": "DELIVERY_FEE",
            "analytics_cache_ttl": "ANALYTICS_CACHE_TTL",
            "log_level": "LOG_LEVEL",
            "admin_email": "ADMIN_EMAIL",
            "admin_password": "ADMIN_PASSWORD",
        }
        values = {field: env[var] for field, var in mapping.items() if env.get(var)}
        return cls(**values)


def configure_logging(settings: Settings) -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s")
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(colors=False),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
