"""Pydantic models describing the embed brokering payloads."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_serializer,
    model_validator,
)
from pydantic.alias_generators import to_camel


NonEmptyStrictStr = Annotated[str, StringConstraints(strict=True, min_length=1)]

# .NET serialises up to seven fractional digits; datetime accepts six.
_FRACTION_PATTERN = re.compile(r"(\.\d{6})\d+")


def parse_expiration(value: str) -> datetime:
    """Parse a Power BI ISO-8601 timestamp into an aware datetime."""

    text = _FRACTION_PATTERN.sub(r"\1", value.strip())
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_timestamp() -> str:
    """Return the current UTC time as ``YYYY-MM-DDTHH:MM:SS.mmmZ``."""

    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


@dataclass(frozen=True)
class UserIdentity:
    """The end user on whose behalf an embed token is brokered."""

    user_id: str
    email: Optional[str] = None


@dataclass(frozen=True)
class AccessToken:
    """Bearer token issued to the service principal for the Power BI API."""

    value: str = field(repr=False)
    token_type: str = "Bearer"
    expires_in_seconds: Optional[int] = None

    @property
    def authorization(self) -> str:
        return f"Bearer {self.value}"


class ReportDescriptor(_CamelModel):
    """Subset of the Power BI report object needed for embedding."""

    model_config = ConfigDict(extra="ignore")

    id: NonEmptyStrictStr
    name: Optional[str] = None
    embed_url: NonEmptyStrictStr
    dataset_id: Optional[str] = None


class EmbedToken(_CamelModel):
    """Report-scoped token returned by ``GenerateToken``."""

    model_config = ConfigDict(extra="ignore")

    token: NonEmptyStrictStr
    token_id: NonEmptyStrictStr
    expiration: NonEmptyStrictStr

    @field_validator("expiration")
    @classmethod
    def _check_expiration(cls, value: str) -> str:
        parse_expiration(value)
        return value

    @property
    def expires_at(self) -> datetime:
        return parse_expiration(self.expiration)


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"{key} must be an object")
    return value


class EmbedSettings(BaseModel):
    """Display options handed to the Power BI JavaScript client."""

    model_config = ConfigDict(frozen=True)

    filter_pane_visible: bool = True
    filter_pane_expanded: bool = False
    page_navigation_visible: bool = True
    status_bar_visible: bool = True

    @model_validator(mode="before")
    @classmethod
    def _from_powerbi(cls, data: Any) -> Any:
        """Accept the nested client shape produced by the serializer."""

        if not isinstance(data, dict) or not ({"panes", "bars"} & data.keys()):
            return data
        panes = _section(data, "panes")
        filters = _section(panes, "filters")
        navigation = _section(panes, "pageNavigation")
        status_bar = _section(_section(data, "bars"), "statusBar")
        flat = {
            "filter_pane_visible": filters.get("visible"),
            "filter_pane_expanded": filters.get("expanded"),
            "page_navigation_visible": navigation.get("visible"),
            "status_bar_visible": status_bar.get("visible"),
        }
        return {key: value for key, value in flat.items() if value is not None}

    def apply(self, overrides: Optional["EmbedSettingsOverride"]) -> "EmbedSettings":
        """Return a copy with every explicitly provided override applied."""

        if overrides is None:
            return self
        return self.model_copy(update=overrides.model_dump(exclude_none=True))

    @model_serializer
    def _to_powerbi(self) -> dict[str, Any]:
        return {
            "panes": {
                "filters": {
                    "expanded": self.filter_pane_expanded,
                    "visible": self.filter_pane_visible,
                },
                "pageNavigation": {"visible": self.page_navigation_visible},
            },
            "bars": {"statusBar": {"visible": self.status_bar_visible}},
        }


class EmbedSettingsOverride(_CamelModel):
    """Caller supplied adjustments to :class:`EmbedSettings`."""

    model_config = ConfigDict(extra="forbid")

    filter_pane_visible: Optional[bool] = None
    filter_pane_expanded: Optional[bool] = None
    page_navigation_visible: Optional[bool] = None
    status_bar_visible: Optional[bool] = None


class EmbedConfiguration(_CamelModel):
    """Everything the browser needs to render one embedded report."""

    type: Literal["report"] = "report"
    id: str
    embed_url: str
    access_token: str
    token_id: str
    expiration: str
    settings: EmbedSettings = Field(default_factory=EmbedSettings)

    @property
    def expires_at(self) -> datetime:
        return parse_expiration(self.expiration)


class EmbedConfigRequest(_CamelModel):
    """Body accepted by ``POST /api/embed/config``."""

    workspace_id: Optional[str] = None
    report_id: Optional[str] = None
    settings: Optional[EmbedSettingsOverride] = None


class EmbedConfigEnvelope(BaseModel):
    success: Literal[True] = True
    data: EmbedConfiguration
    timestamp: str = Field(default_factory=utc_timestamp)


class EmbedTokenEnvelope(BaseModel):
    success: Literal[True] = True
    data: EmbedToken
    timestamp: str = Field(default_factory=utc_timestamp)


class ReportListEnvelope(BaseModel):
    success: Literal[True] = True
    data: list[ReportDescriptor]
    count: int
    timestamp: str = Field(default_factory=utc_timestamp)


class ErrorEnvelope(BaseModel):
    """Body returned for every failed request."""

    success: Literal[False] = False
    error: str
    timestamp: str = Field(default_factory=utc_timestamp)


__all__ = [
    "AccessToken",
    "EmbedConfigEnvelope",
    "EmbedConfigRequest",
    "EmbedConfiguration",
    "EmbedSettings",
    "EmbedSettingsOverride",
    "EmbedToken",
    "EmbedTokenEnvelope",
    "ErrorEnvelope",
    "ReportDescriptor",
    "ReportListEnvelope",
    "UserIdentity",
    "parse_expiration",
    "utc_timestamp",
]
