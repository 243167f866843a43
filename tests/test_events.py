"""Tests for the event dispatcher."""

import threading
from unittest.mock import MagicMock

import pytest
from reactivex.scheduler import ImmediateScheduler

from rxcord.events import EventDispatcher
from rxcord.utils import TaggedData


@pytest.fixture
def dispatcher(logger_provider):
    return EventDispatcher(ImmediateScheduler(), logger_provider=logger_provider)


class TestRegistration:
    def test_register_requires_handler(self, dispatcher):
        with pytest.raises(ValueError):
            dispatcher.register("ready", None)

    def test_register_requires_callable(self, dispatcher):
        with pytest.raises(TypeError):
            dispatcher.register("ready", "not a function")

    def test_multiple_handlers_in_order(self, dispatcher):
        first, second = MagicMock(), MagicMock()
        dispatcher.register("ready", first)
        dispatcher.register("ready", second)
        assert dispatcher.handlers_for("ready") == [first, second]
        assert dispatcher.events == ["ready"]

    def test_handlers_for_returns_copy(self, dispatcher):
        dispatcher.register("ready", MagicMock())
        dispatcher.handlers_for("ready").clear()
        assert len(dispatcher.handlers_for("ready")) == 1

    def test_unregister_one_and_all(self, dispatcher):
        first, second = MagicMock(), MagicMock()
        dispatcher.register("ready", first)
        dispatcher.register("ready", second)

        dispatcher.unregister("ready", first)
        assert dispatcher.handlers_for("ready") == [second]

        dispatcher.unregister("ready")
        assert dispatcher.handlers_for("ready") == []
        assert dispatcher.events == []

    def test_clear(self, dispatcher):
        dispatcher.register("a", MagicMock())
        dispatcher.register("b", MagicMock())
        dispatcher.clear()
        assert dispatcher.events == []


class TestFire:
    def test_handlers_receive_arguments(self, dispatcher):
        handler = MagicMock()
        dispatcher.register("message_create", handler)
        dispatcher.fire("message_create", {"content": "hi"})
        handler.assert_called_once_with({"content": "hi"})

    def test_event_without_handlers_is_noop(self, dispatcher):
        dispatcher.fire("nothing_registered", 1)

    def test_failing_handler_does_not_affect_others(self, dispatcher):
        dispatcher._log = MagicMock()
        good = MagicMock()
        dispatcher.register("ready", MagicMock(side_effect=RuntimeError("boom")))
        dispatcher.register("ready", good)

        dispatcher.fire("ready", {})

        good.assert_called_once_with({})
        dispatcher._log.error.assert_called_once()
        assert "boom" in dispatcher._log.error.call_args[0][0]

    def test_fire_does_not_wait_for_handlers(self, logger_provider):
        dispatcher = EventDispatcher(logger_provider=logger_provider)
        release, done = threading.Event(), threading.Event()

        def slow(_data):
            release.wait(2.0)
            done.set()

        dispatcher.register("ready", slow)
        dispatcher.fire("ready", {})

        assert not done.is_set()
        release.set()
        assert done.wait(2.0)

    def test_subscribes_to_tagged_stream(self, dispatcher):
        handler = MagicMock()
        dispatcher.register("guild_create", handler)
        dispatcher.on_next(TaggedData("guild_create", {"id": "g"}))
        handler.assert_called_once_with({"id": "g"})
