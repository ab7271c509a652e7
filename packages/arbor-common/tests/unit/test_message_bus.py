from unittest.mock import MagicMock

import pytest
from pyarbor.common.messaging.bus import MessageBus, MessageStore


@pytest.fixture
def store() -> MessageStore:
    return MessageStore(locale="zh")


def test_store_loads_all_locale_files(store: MessageStore):
    assert store.get("node.create.success") != "<node.create.success>"
    assert store.get("engine.config.success.saved") != "<engine.config.success.saved>"
    assert store.get("missing.key") == "<missing.key>"


def test_bus_formats_and_renders(store: MessageStore):
    renderer = MagicMock()
    bus = MessageBus(store)
    bus.set_renderer(renderer)

    bus.success("node.create.success", kind="hostgroup", node_id=1, title="eu/paris")

    message = renderer.success.call_args.args[0]
    assert "hostgroup" in message
    assert "eu/paris" in message


def test_missing_format_key_returns_template(store: MessageStore):
    bus = MessageBus(store)
    assert "{title}" in bus.get("node.create.success", kind="hostgroup")


def test_without_renderer_messages_are_dropped(store: MessageStore, caplog):
    bus = MessageBus(store)
    bus.error("common.error.generic", error="boom")
    bus.data("payload")
    assert "renderer not configured" in caplog.text


def test_unknown_locale_falls_back_to_default(caplog):
    fallback = MessageStore(locale="xx")
    assert fallback.locale == "zh"
    assert fallback.get("node.create.success") == MessageStore(locale="zh").get("node.create.success")
    assert "falling back" in caplog.text


def test_field_errors_render_header_then_one_line_each(store: MessageStore):
    renderer = MagicMock()
    bus = MessageBus(store)
    bus.set_renderer(renderer)

    bus.field_errors("node.error.invalid", "node.error.field", [("name", "is too long"), ("ancestry", "is invalid")])

    lines = [c.args[0] for c in renderer.error.call_args_list]
    assert lines[0] == store.get("node.error.invalid")
    assert lines[1:] == ["   - name is too long", "   - ancestry is invalid"]
