"""Centralized logging configuration with Pydantic Logfire integration."""

import logging
from typing import Any

import logfire
from fastapi import FastAPI

from src.config import get_settings


def setup_logfire(app: FastAPI | None = None) -> None:
    """
    Initialize and configure Pydantic Logfire for observability.

    Sets up:
    - FastAPI instrumentation (when an app is given)
    - Pydantic and PydanticAI instrumentation
    - Outbound httpx instrumentation (Douban requests)
    - Environment-aware Python logging format
    """
    settings = get_settings()

    logfire_config: dict[str, Any] = {
        "environment": settings.env,
        "send_to_logfire": "if-token-present",
    }
    if settings.logfire_token:
        logfire_config["token"] = settings.logfire_token

    logfire.configure(**logfire_config)

    if app is not None:
        logfire.instrument_fastapi(app)
    logfire.instrument_pydantic()
    logfire.instrument_httpx()

    try:
        logfire.instrument_pydantic_ai()
    except AttributeError:
        # Older logfire releases do not ship the PydanticAI integration
        pass

    log_level = settings.log_level.upper()

    if settings.env == "local":
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
    else:
        # Logfire handles structured formatting
        logging.basicConfig(
            level=getattr(logging, log_level, logging.INFO),
            format="%(message)s",
        )


def mask_pii(value: str | None, mask_char: str = "*") -> str:
    """
    Mask potentially sensitive data in logs.

    Args:
        value: Value to mask
        mask_char: Character to use for masking

    Returns:
        Masked string
    """
    if not value:
        return ""

    if len(value) <= 4:
        return mask_char * len(value)

    # Show first 2 and last 2 characters, mask the rest
    return f"{value[:2]}{mask_char * (len(value) - 4)}{value[-2:]}"


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """
    Redact credentials from an outbound header mapping before logging it.

    Args:
        headers: Request headers (e.g. the Douban User-Agent/Cookie pair)

    Returns:
        Copy of the headers with sensitive values masked
    """
    sensitive_keys = {"cookie", "authorization", "x-api-key"}
    return {
        key: mask_pii(value) if key.lower() in sensitive_keys else value
        for key, value in headers.items()
    }
