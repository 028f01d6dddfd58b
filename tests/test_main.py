"""Tests for switchboard.main: logging processor and system wiring."""

from __future__ import annotations

from pathlib import Path

import pytest

from switchboard.api.model import ModelBackend
from switchboard.config import SwitchboardConfig
from switchboard.main import _truncate_sensitive_fields, build_router, build_tool_registry


def test_truncate_sensitive_fields():
    event = {"event": "x", "content": "a" * 200, "agent_id": "b" * 200}

    result = _truncate_sensitive_fields(None, "info", event)

    assert result["content"].endswith("... [truncated]")
    assert len(result["content"]) < 120
    assert result["agent_id"] == "b" * 200


def test_short_fields_untouched():
    event = {"event": "x", "message": "hi"}
    assert _truncate_sensitive_fields(None, "info", event)["message"] == "hi"


def test_build_tool_registry_has_builtins():
    assert build_tool_registry().get("get_current_time") is not None


@pytest.mark.asyncio
async def test_build_router_wires_components(monkeypatch, tmp_path, make_backend):
    monkeypatch.setenv("SWITCHBOARD_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("SWITCHBOARD_DB_PATH", raising=False)
    monkeypatch.delenv("SWITCHBOARD_FALLBACK_AGENT", raising=False)
    backend = make_backend("wired")

    router = build_router(SwitchboardConfig(), backend=backend)
    await router.initialize()
    try:
        assert (tmp_path / "switchboard.db").exists()
        assert router.get_agent("default-agent") is not None
        await router.assign("+1", "default-agent")
        assert await router.dispatch("hi", "+1", "Ana") == "wired"
    finally:
        await router.shutdown()


def test_build_router_defaults_to_anthropic_backend(monkeypatch, tmp_path):
    monkeypatch.setenv("SWITCHBOARD_DATA_DIR", str(tmp_path))
    monkeypatch.delenv("SWITCHBOARD_DB_PATH", raising=False)

    router = build_router(SwitchboardConfig())

    assert isinstance(router._backend, ModelBackend)
    router._database.close()


def test_package_metadata_does_not_publish_design_notes():
    tomllib = pytest.importorskip("tomllib")
    pyproject = Path(__file__).resolve().parents[1] / "pyproject.toml"

    project = tomllib.loads(pyproject.read_text(encoding="utf-8"))["project"]

    assert project.get("readme") != "DESIGN.md"
    assert project["scripts"]["switchboard"] == "switchboard.cli.app:main"
