"""
Configuration utilities and settings for the barprinter worker.
Handles environment variables, settings validation and startup checks.
"""

import os
from pathlib import Path
from typing import Optional

import structlog
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from barprinter.config.constants import HotplugConstants, OrderConstants, ReceiptConstants

logger = structlog.get_logger()


class BarPrinterSettings(BaseSettings):
    """
    Worker settings with validation.

    All settings are loaded from environment variables or a .env file. Field
    names match the environment variable names (case-insensitive).
    """

    environment: str = Field(
        default="production",
        description="Application environment: development, production or testing"
    )

    # Logging
    log_level: str = Field(
        default="info",
        description="Logging level: debug, info, warning, error, critical"
    )
    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path in addition to stdout."
    )

    # Order store (Firestore)
    firebase_credentials_path: str = Field(
        default="serviceAccountKey.json",
        description="Path to the Firebase service account JSON used by the worker."
    )
    firebase_project_id: Optional[str] = Field(
        default=None,
        description="Firebase project id. Taken from the service account when empty."
    )
    orders_collection: str = Field(
        default=OrderConstants.COLLECTION,
        description="Firestore collection holding drink orders."
    )

    # Printer
    printer_vendor_id: Optional[str] = Field(
        default=None,
        description="Hex USB vendor id (e.g. 0x04b8). Restricts discovery to this vendor."
    )
    printer_product_id: Optional[str] = Field(
        default=None,
        description="Hex USB product id. Only used together with PRINTER_VENDOR_ID."
    )
    printer_profile: Optional[str] = Field(
        default=None,
        description="python-escpos capability profile name (e.g. TM-T88III)."
    )
    attach_settle_delay: float = Field(
        default=HotplugConstants.ATTACH_SETTLE_DELAY,
        description="Seconds to wait after a USB attach event before probing for the printer.",
        ge=0.0,
        le=30.0
    )
    hotplug_poll_interval: float = Field(
        default=HotplugConstants.POLL_INTERVAL,
        description="Seconds between USB device snapshots used to detect attach/detach.",
        ge=0.5,
        le=60.0
    )
    client_placeholder: str = Field(
        default=ReceiptConstants.CLIENT_PLACEHOLDER,
        description="Label printed when an order has no client name."
    )
    unrecorded_retry_interval: float = Field(
        default=OrderConstants.UNRECORDED_RETRY_INTERVAL,
        description="Seconds between retries of the done status write for printed orders. 0 disables.",
        ge=0.0,
        le=3600.0
    )

    # Metrics
    metrics_port: int = Field(
        default=0,
        description="Port for the Prometheus metrics exporter. 0 disables it.",
        ge=0,
        le=65535
    )

    @field_validator('environment')
    @classmethod
    def validate_environment(cls, v):
        """Validate environment setting."""
        valid_environments = ['development', 'production', 'testing']
        if v.lower() not in valid_environments:
            raise ValueError(
                f"Invalid environment '{v}'. Must be one of: {', '.join(valid_environments)}"
            )
        return v.lower()

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level setting."""
        valid_levels = ['debug', 'info', 'warning', 'error', 'critical']
        if v.lower() not in valid_levels:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(valid_levels)}"
            )
        return v.lower()

    @field_validator('printer_vendor_id', 'printer_product_id')
    @classmethod
    def validate_usb_id(cls, v):
        """Accept hex ids with or without the 0x prefix."""
        if v is None or not v.strip():
            return None
        try:
            value = int(v.strip(), 16)
        except ValueError:
            raise ValueError(f"Invalid USB id '{v}'. Use hex notation, e.g. 0x04b8")
        if not 0 <= value <= 0xFFFF:
            raise ValueError(f"USB id '{v}' out of range (0x0000-0xffff)")
        return f"0x{value:04x}"

    @field_validator('client_placeholder')
    @classmethod
    def validate_client_placeholder(cls, v):
        """Placeholder must print something."""
        if not v.strip():
            return ReceiptConstants.CLIENT_PLACEHOLDER
        return v.strip()

    @property
    def vendor_id(self) -> Optional[int]:
        """Configured vendor id as integer."""
        return int(self.printer_vendor_id, 16) if self.printer_vendor_id else None

    @property
    def product_id(self) -> Optional[int]:
        """Configured product id as integer."""
        return int(self.printer_product_id, 16) if self.printer_product_id else None

    @property
    def metrics_enabled(self) -> bool:
        """Check if the metrics exporter should run."""
        return self.metrics_port > 0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )


# Global settings instance
_settings: Optional[BarPrinterSettings] = None


def get_settings() -> BarPrinterSettings:
    """Get global settings instance."""
    global _settings
    if _settings is None:
        _settings = BarPrinterSettings()
    return _settings


def reload_settings() -> BarPrinterSettings:
    """Reload settings from environment variables.

    Returns:
        Newly loaded BarPrinterSettings instance.
    """
    global _settings
    _settings = BarPrinterSettings()
    return _settings


def validate_settings_on_startup(settings: Optional[BarPrinterSettings] = None) -> dict:
    """
    Startup validation of the worker settings.

    Args:
        settings: Settings instance to validate. If None, uses global settings.

    Returns:
        dict: Validation results with structure:
            {
                "valid": bool,
                "errors": List[str],     # Critical errors that prevent startup
                "warnings": List[str],   # Non-critical issues to log
                "info": List[str]        # Informational messages
            }
    """
    if settings is None:
        settings = get_settings()

    errors = []
    warnings = []
    info = []

    # ========================================================================
    # Order store credentials
    # ========================================================================

    credentials_path = Path(settings.firebase_credentials_path)
    if not credentials_path.exists():
        errors.append(f"Firebase credentials file not found: {credentials_path}")
    elif not os.access(credentials_path, os.R_OK):
        errors.append(f"Firebase credentials file not readable: {credentials_path}")
    else:
        info.append(f"Using Firebase credentials: {credentials_path}")

    if not settings.orders_collection.strip():
        errors.append("ORDERS_COLLECTION must not be empty")
    else:
        info.append(f"Watching order collection: {settings.orders_collection}")

    # ========================================================================
    # Printer selection
    # ========================================================================

    if settings.printer_product_id and not settings.printer_vendor_id:
        warnings.append("PRINTER_PRODUCT_ID is set without PRINTER_VENDOR_ID and will be ignored")

    if settings.printer_vendor_id:
        target = settings.printer_vendor_id
        if settings.printer_product_id:
            target = f"{target}:{settings.printer_product_id}"
        info.append(f"Printer discovery restricted to {target}")
    else:
        info.append("Printer discovery uses known thermal printer vendors and USB printer class")

    # ========================================================================
    # Timing
    # ========================================================================

    if settings.attach_settle_delay < 0.5:
        warnings.append(
            f"ATTACH_SETTLE_DELAY={settings.attach_settle_delay}s is short; "
            "freshly attached printers may not be ready yet"
        )

    if settings.metrics_enabled:
        info.append(f"Metrics exporter enabled on port {settings.metrics_port}")

    is_valid = len(errors) == 0

    if errors:
        logger.error("Settings validation FAILED", errors=errors, warnings=warnings)
    elif warnings:
        logger.warning("Settings validation succeeded with warnings", warnings=warnings)
    else:
        logger.info("Settings validation succeeded", info_count=len(info))

    return {
        "valid": is_valid,
        "errors": errors,
        "warnings": warnings,
        "info": info
    }
