"""Tests for the worker entry point."""
import asyncio

import pytest

from barprinter.main import run_worker
from barprinter.utils.config import BarPrinterSettings
from barprinter.utils.errors import ConfigurationError


async def test_invalid_settings_stop_startup(tmp_path):
    settings = BarPrinterSettings(
        _env_file=None,
        firebase_credentials_path=str(tmp_path / "missing.json"),
    )

    with pytest.raises(ConfigurationError) as exc_info:
        await run_worker(settings, stop_event=asyncio.Event())

    assert "not found" in exc_info.value.details["errors"][0]
