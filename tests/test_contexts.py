from conftest import FakeBrowser, FakeContext

from page_session.contexts import IsolatedContextRegistry


async def test_get_or_create_reuses_named_context():
    browser = FakeBrowser()
    registry = IsolatedContextRegistry()

    first = await registry.get_or_create("work", browser)
    second = await registry.get_or_create("work", browser)

    assert first is second
    assert browser.created_contexts == 1
    assert registry.name_for(first) == "work"


def test_discover_names_unknown_contexts():
    default = FakeContext("default")
    external_1, external_2 = FakeContext("x"), FakeContext("y")
    closed = FakeContext("z")
    closed.closed = True
    registry = IsolatedContextRegistry()

    assert registry.discover([default, external_1, closed], default) == ["isolated-context-1"]
    assert registry.discover([default, external_1, external_2], default) == [
        "isolated-context-2"
    ]
    assert registry.name_for(external_1) == "isolated-context-1"
    assert registry.name_for(default) is None
    assert registry.name_for(closed) is None


async def test_discover_skips_named_contexts():
    browser = FakeBrowser()
    registry = IsolatedContextRegistry()
    named = await registry.get_or_create("work", browser)

    assert registry.discover(browser.contexts(), browser.default) == []
    assert registry.names() == ["work"]
    assert registry.name_for(named) == "work"


def test_clear_forgets_names():
    default, ctx = FakeContext("default"), FakeContext("x")
    registry = IsolatedContextRegistry()
    registry.discover([ctx], default)

    registry.clear()

    assert registry.names() == []
    assert not ctx.closed
