"""
Tests for the application logger helpers.
"""

import logging

import pytest

from learniq.common import logger as logger_module
from learniq.common.logger import app_logger, log_execution_time, with_context


def test_exported_names_exist():
    for name in logger_module.__all__:
        assert hasattr(logger_module, name), name


def test_with_context_stamps_messages(caplog):
    adapter = with_context(app_logger.getChild("quiz"), user_id="u1", operation="submit")

    with caplog.at_level(logging.INFO, logger="learniq"):
        adapter.info("Attempt saved")

    assert "Attempt saved [user_id=u1 operation=submit]" in caplog.text
    assert caplog.records[-1].data == {"user_id": "u1", "operation": "submit"}


@pytest.mark.asyncio
async def test_log_execution_time_reports_async_failures(caplog):
    target = app_logger.getChild("jobs")

    @log_execution_time(target)
    async def daily_job():
        raise RuntimeError("store unavailable")

    with caplog.at_level(logging.ERROR, logger="learniq"):
        with pytest.raises(RuntimeError):
            await daily_job()

    assert "daily_job failed after" in caplog.text
