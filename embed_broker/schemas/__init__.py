"""Pydantic schemas for API input and output."""

from .embed import (
    AccessToken,
    EmbedConfiguration,
    EmbedSettings,
    EmbedSettingsOverride,
    EmbedToken,
    ReportDescriptor,
    UserIdentity,
)

__all__ = [
    "AccessToken",
    "EmbedConfiguration",
    "EmbedSettings",
    "EmbedSettingsOverride",
    "EmbedToken",
    "ReportDescriptor",
    "UserIdentity",
]
