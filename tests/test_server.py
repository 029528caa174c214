import pytest

from page_session import server, tools
from page_session.config import SessionConfig


@pytest.fixture
def installed(manager, monkeypatch):
    monkeypatch.setattr(server, "manager", manager)
    return manager


async def test_dispatch_runs_handler(installed):
    text = await server._dispatch("list_pages", tools.list_pages)

    assert text == "## Pages\n1: about:blank [selected]"
    assert not server.serializer.locked


async def test_session_errors_become_messages(installed, browser):
    text = await server._dispatch("close_page", tools.close_page, 1)

    assert text == "Error: The last open page cannot be closed. It is fine to keep it open."
    assert not browser.default.pages[0].closed
    assert not server.serializer.locked


async def test_unexpected_errors_include_cause(installed):
    async def broken(manager):
        try:
            raise ValueError("protocol error")
        except ValueError as exc:
            raise RuntimeError("click failed") from exc

    text = await server._dispatch("broken", broken)

    assert text == "Error: click failed\nCause: protocol error"
    assert not server.serializer.locked


async def test_invalid_emulation_becomes_message(installed):
    text = await server._dispatch("emulate", tools.emulate, cpu_throttling_rate=50)

    assert text.startswith("Error: Invalid emulation settings: cpu_throttling_rate:")
    assert installed.get_selected_page().handle.cpu_rate is None
    assert not server.serializer.locked


async def test_registry_is_refreshed_before_each_command(installed, browser):
    browser.open_page(url="https://example.com/")

    text = await server._dispatch("list_pages", tools.list_pages)

    assert "2: https://example.com/" in text


def test_config_from_env(monkeypatch):
    monkeypatch.setenv("PAGE_SESSION_HEADLESS", "false")
    monkeypatch.setenv("PAGE_SESSION_DEFAULT_TIMEOUT_MS", "7000")
    monkeypatch.setenv("PAGE_SESSION_TRANSPORT", "sse")

    config = SessionConfig.from_env()

    assert config.headless is False
    assert config.default_timeout_ms == 7000
    assert config.navigation_timeout_ms == 10000
    assert config.transport == "sse"
