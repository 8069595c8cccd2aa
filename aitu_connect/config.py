"""
Unified Configuration Management for aitu-connect

Consolidates client configuration into a single source of truth using Pydantic BaseSettings.
All settings can be overridden via environment variables with AITU_ prefix.

Usage:
    from aitu_connect.config import get_settings

    settings = get_settings()
    print(settings.base_url)
    print(settings.websocket_url)
"""

import logging
from functools import lru_cache
from typing import Literal, Optional
from urllib.parse import urlsplit, urlunsplit

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class ConnectSettings(BaseSettings):
    """
    Unified configuration for the aitu-connect chat client

    All settings can be overridden via environment variables with AITU_ prefix.
    Example: AITU_BASE_URL=https://connect.example.org
    """

    model_config = SettingsConfigDict(
        env_prefix="AITU_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ============================================
    # SYSTEM SETTINGS
    # ============================================

    environment: Literal["development", "production", "testing"] = Field(
        default="development",
        description="Application environment"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # ============================================
    # SERVER SETTINGS
    # ============================================

    base_url: str = Field(
        default="http://localhost:8080",
        description="Base URL of the aitu-connect server (REST and websocket share the host)"
    )

    ws_path: str = Field(
        default="/api/chat/ws",
        description="Path of the live messaging endpoint"
    )

    request_timeout: float = Field(
        default=10.0,
        description="REST request timeout in seconds"
    )

    # ============================================
    # SESSION SETTINGS
    # ============================================

    session_cookie_name: str = Field(
        default="sid",
        description="Name of the session cookie issued by /api/auth/login"
    )

    session_token: Optional[str] = Field(
        default=None,
        description="Existing session cookie value (skips login)"
    )

    # ============================================
    # SYNC SETTINGS
    # ============================================

    reconnect_delay: float = Field(
        default=3.0,
        description="Fixed delay in seconds before reconnecting after the live connection closes"
    )

    route_pushes_by_conversation: bool = Field(
        default=False,
        description="Append pushes to their own conversation instead of the active one"
    )

    @field_validator("base_url", mode="after")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Only http(s) base URLs can be upgraded to a websocket URL"""
        scheme = urlsplit(v).scheme
        if scheme not in ("http", "https"):
            raise ValueError(f"base_url must use http or https, got {scheme!r}")
        return v.rstrip("/")

    @field_validator("reconnect_delay", mode="after")
    @classmethod
    def validate_reconnect_delay(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("reconnect_delay must be positive")
        return v

    @property
    def websocket_url(self) -> str:
        """Live endpoint URL; a secure base URL yields a secure socket"""
        parts = urlsplit(self.base_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, self.ws_path, "", ""))

    def to_dict(self) -> dict:
        """Convert settings to dictionary"""
        return self.model_dump()


# ============================================
# SINGLETON PATTERN
# ============================================

@lru_cache()
def get_settings() -> ConnectSettings:
    """
    Get cached settings instance (singleton pattern)

    Returns:
        ConnectSettings: Client settings
    """
    return ConnectSettings()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure root logging for command line use"""
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.INFO), format=LOG_FORMAT)
