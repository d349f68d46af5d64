"""Tests for log setup and structured log fields."""

import io
import json
import logging

import pytest

from container_registry.managers.reconciliation_manager import ReadFreshness
from container_registry.utils.exceptions import RuntimeUnavailableError
from container_registry.utils.logging import get_logger, setup_logging


def _json_lines(output: io.StringIO) -> list:
    return [json.loads(line) for line in output.getvalue().splitlines() if line.strip()]


def test_json_format_includes_extra_fields():
    """Test that extra fields are rendered as JSON keys."""
    output = io.StringIO()
    handler = setup_logging("INFO", "json", stream=output)
    try:
        get_logger("container_registry.test").info(
            "Updated container status", extra={"container_name": "web-1", "status": "running"}
        )
    finally:
        logging.getLogger().removeHandler(handler)

    (line,) = _json_lines(output)
    assert line["message"] == "Updated container status"
    assert line["name"] == "container_registry.test"
    assert line["container_name"] == "web-1"
    assert line["status"] == "running"


def test_repeated_setup_keeps_foreign_handlers():
    """Test that only the registry's own handler is replaced."""
    root = logging.getLogger()
    foreign = logging.NullHandler()
    root.addHandler(foreign)
    try:
        first = setup_logging("INFO", "text", stream=io.StringIO())
        second = setup_logging("DEBUG", "json", stream=io.StringIO())

        assert foreign in root.handlers
        assert second in root.handlers
        assert first not in root.handlers
        assert root.level == logging.DEBUG
        root.removeHandler(second)
    finally:
        root.removeHandler(foreign)


@pytest.mark.asyncio
async def test_store_writes_log_at_info(store, log_output):
    """Test that every store write produces a structured record at INFO."""
    await store.get_or_create("web-1", "alpine", {})
    await store.update_status("web-1", "running")
    await store.set_node("web-1", "node-a")
    await store.delete("web-1")

    messages = {
        line["message"]: line
        for line in _json_lines(log_output)
        if line.get("container_name") == "web-1"
    }
    assert {
        "Created container record",
        "Updated container status",
        "Updated container node",
        "Deleted container record",
    } <= set(messages)
    assert messages["Updated container status"]["status"] == "running"


@pytest.mark.asyncio
async def test_degraded_read_logs_warning(store, driver, reconciler, log_output):
    """Test that an unreachable runtime is logged and the read still succeeds."""
    await store.get_or_create("c1", "alpine", {})
    driver.unavailable = True

    effective = await reconciler.effective_status("c1")

    assert effective.freshness is ReadFreshness.DEGRADED
    (warning,) = [
        line
        for line in _json_lines(log_output)
        if line["message"] == "Runtime unavailable, returning persisted status"
    ]
    assert warning["container_name"] == "c1"
    assert warning["status"] == "stopped"


@pytest.mark.asyncio
async def test_lifecycle_failure_logs_error(manager, driver, log_output):
    """Test that a failed lifecycle command is logged before it propagates."""
    await manager.create("web-1", "alpine", {})
    driver.unavailable = True

    with pytest.raises(RuntimeUnavailableError):
        await manager.start("web-1")

    errors = [
        line for line in _json_lines(log_output) if line["message"] == "Lifecycle command failed"
    ]
    assert [(e["container_name"], e["command"]) for e in errors] == [("web-1", "start")]
