from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional, Tuple
from urllib.parse import urlparse

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, SecretStr


load_dotenv()

DEFAULT_AUTHORITY = "https://login.microsoftonline.com/"
DEFAULT_POWERBI_SCOPE = "https://analysis.windows.net/powerbi/api/.default"
DEFAULT_POWERBI_API_URL = "https://api.powerbi.com"
DEFAULT_ALLOWED_ORIGINS = ("http://localhost:3000", "http://localhost:5173")


class Settings(BaseModel):
    """Runtime configuration values loaded from the environment."""

    model_config = ConfigDict(frozen=True)

    app_name: str = Field(default="Power BI Embed Broker")
    environment: str = Field(default="development")
    log_level: str = Field(default="INFO")

    azure_client_id: Optional[str] = None
    azure_client_secret: Optional[SecretStr] = None
    azure_tenant_id: Optional[str] = None
    azure_authority: str = Field(default=DEFAULT_AUTHORITY)

    powerbi_scope: str = Field(default=DEFAULT_POWERBI_SCOPE)
    powerbi_api_url: str = Field(default=DEFAULT_POWERBI_API_URL)
    powerbi_workspace_id: Optional[str] = None
    powerbi_report_id: Optional[str] = None

    session_jwt_secret: Optional[SecretStr] = None
    session_jwt_audience: Optional[str] = None
    session_jwt_issuer: Optional[str] = None

    allowed_origins: Tuple[str, ...] = Field(default=DEFAULT_ALLOWED_ORIGINS)
    http_timeout_seconds: float = Field(default=10.0, gt=0)

    def service_principal(self) -> "ServicePrincipalCredential":
        """Return the service principal credential described by the settings."""

        secret = self.azure_client_secret.get_secret_value() if self.azure_client_secret else None
        return ServicePrincipalCredential(
            client_id=self.azure_client_id,
            client_secret=secret,
            tenant_id=self.azure_tenant_id,
            scope=self.powerbi_scope,
        )


@dataclass(frozen=True)
class ServicePrincipalCredential:
    """Application identity used for the client credentials grant."""

    client_id: Optional[str]
    client_secret: Optional[str] = field(repr=False)
    tenant_id: Optional[str]
    scope: str = DEFAULT_POWERBI_SCOPE

    def missing_fields(self) -> List[str]:
        missing = []
        if not self.client_id:
            missing.append("AZURE_CLIENT_ID")
        if not self.client_secret:
            missing.append("AZURE_CLIENT_SECRET")
        if not self.tenant_id:
            missing.append("AZURE_TENANT_ID")
        return missing


@dataclass(frozen=True)
class ConfigValidation:
    """Outcome of :func:`validate_settings`."""

    errors: List[str]
    warnings: List[str]

    @property
    def is_valid(self) -> bool:
        return not self.errors


def _get_env(name: str) -> Optional[str]:
    """Read an environment variable stripping whitespace and empty values."""

    value = os.getenv(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def _get_secret(name: str) -> Optional[SecretStr]:
    value = _get_env(name)
    return SecretStr(value) if value else None


def _parse_origins(raw: Optional[str]) -> Tuple[str, ...]:
    """Split a comma separated list of CORS origins."""

    if raw is None:
        return DEFAULT_ALLOWED_ORIGINS
    return tuple(origin.strip() for origin in raw.split(",") if origin.strip())


def _build_settings() -> Settings:
    """Construct settings object from environment variables."""

    authority = _get_env("AZURE_AUTHORITY") or DEFAULT_AUTHORITY
    if not authority.endswith("/"):
        authority = f"{authority}/"

    return Settings(
        app_name=os.getenv("APP_NAME", "Power BI Embed Broker"),
        environment=os.getenv("ENVIRONMENT", "development"),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
        azure_client_id=_get_env("AZURE_CLIENT_ID"),
        azure_client_secret=_get_secret("AZURE_CLIENT_SECRET"),
        azure_tenant_id=_get_env("AZURE_TENANT_ID"),
        azure_authority=authority,
        powerbi_scope=_get_env("POWERBI_SCOPE") or DEFAULT_POWERBI_SCOPE,
        powerbi_api_url=(_get_env("POWERBI_API_URL") or DEFAULT_POWERBI_API_URL).rstrip("/"),
        powerbi_workspace_id=_get_env("POWERBI_WORKSPACE_ID"),
        powerbi_report_id=_get_env("POWERBI_REPORT_ID"),
        session_jwt_secret=_get_secret("SESSION_JWT_SECRET"),
        session_jwt_audience=_get_env("SESSION_JWT_AUDIENCE"),
        session_jwt_issuer=_get_env("SESSION_JWT_ISSUER"),
        allowed_origins=_parse_origins(_get_env("ALLOWED_ORIGINS")),
        http_timeout_seconds=float(os.getenv("HTTP_TIMEOUT_SECONDS", "10")),
    )


def _is_http_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def validate_settings(settings: Settings) -> ConfigValidation:
    """Check that the settings are complete enough to broker embed tokens."""

    errors: List[str] = []
    warnings: List[str] = []

    for name in settings.service_principal().missing_fields():
        errors.append(f"{name} is required")
    if not settings.powerbi_workspace_id:
        errors.append("POWERBI_WORKSPACE_ID is required")
    if not settings.powerbi_report_id:
        warnings.append(
            "POWERBI_REPORT_ID not set - will need to be provided in API calls"
        )
    if settings.session_jwt_secret is None:
        errors.append("SESSION_JWT_SECRET is required")

    if not _is_http_url(settings.azure_authority):
        errors.append("AZURE_AUTHORITY must be a valid URL")
    if not _is_http_url(settings.powerbi_api_url):
        errors.append("POWERBI_API_URL must be a valid URL")

    return ConfigValidation(errors=errors, warnings=warnings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached application settings."""

    load_dotenv(override=False)
    return _build_settings()


def reload_settings() -> Settings:
    """Clear the settings cache and rebuild the configuration."""

    get_settings.cache_clear()  # type: ignore[attr-defined]
    return get_settings()


__all__ = [
    "ConfigValidation",
    "ServicePrincipalCredential",
    "Settings",
    "get_settings",
    "reload_settings",
    "validate_settings",
]
