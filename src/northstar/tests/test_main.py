"""Tests for the entry point and logging setup."""
import logging
from unittest.mock import AsyncMock, patch

import pytest

from northstar import __main__ as entry
from northstar.config import settings
from northstar.logging_config import get_logger, setup_logging
from northstar.models.tracking_models import APIResponse


@pytest.mark.asyncio
async def test_main_reports_healthy_api() -> None:
    """Test that a healthy API gives exit code 0."""
    with patch.object(entry.APIClient, "health_check", new_callable=AsyncMock) as health_check, \
            patch.object(entry, "start_monitoring") as start_monitoring:
        health_check.return_value = APIResponse(success=True, data={"status": "ok"})
        assert await entry.main() == 0

    health_check.assert_awaited_once()
    if not settings.monitoring.enabled:
        start_monitoring.assert_not_called()


@pytest.mark.asyncio
async def test_main_reports_unavailable_api() -> None:
    with patch.object(entry.APIClient, "health_check", new_callable=AsyncMock) as health_check, \
            patch.object(entry, "start_monitoring"):
        health_check.return_value = APIResponse(success=False, error="Request timed out")
        assert await entry.main() == 1


def test_setup_logging() -> None:
    """Test that the root logger gets a single console handler."""
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers[:], root.level
    try:
        setup_logging("test run", level="DEBUG")
        setup_logging(level=logging.WARNING)

        stream_handlers = [h for h in root.handlers if isinstance(h, logging.StreamHandler)]
        assert len(stream_handlers) >= 1
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING
    finally:
        root.handlers[:] = saved_handlers
        root.setLevel(saved_level)


def test_get_logger() -> None:
    assert get_logger("northstar.test").name == "northstar.test"


if __name__ == "__main__":
    pytest.main([__file__])
