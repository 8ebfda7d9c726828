"""Tests for logging context management."""

import asyncio

from attributionnav.logging.context import (
    LogContext,
    add_context,
    clear_context,
    get_context,
)


class TestLoggingContext:
    """Test logging context functions."""

    def setup_method(self):
        """Set up test method."""
        clear_context()

    def test_add_context(self):
        add_context(conversion_id="conv_1", user_id="user_1")

        context = get_context()
        assert context["conversion_id"] == "conv_1"
        assert context["user_id"] == "user_1"

    def test_clear_context(self):
        add_context(field1="value1", field2="value2")
        assert len(get_context()) == 2

        clear_context()
        assert get_context() == {}

    def test_get_context_returns_copy(self):
        add_context(model_type="linear")

        get_context()["model_type"] = "changed"

        assert get_context()["model_type"] == "linear"

    def test_context_manager_restores_previous(self):
        add_context(user_id="user_1")

        with LogContext(conversion_id="conv_1", user_id="user_2"):
            assert get_context() == {"user_id": "user_2", "conversion_id": "conv_1"}

        assert get_context() == {"user_id": "user_1"}

    async def test_tasks_are_isolated(self):
        async def tagged(conversion_id):
            with LogContext(conversion_id=conversion_id):
                await asyncio.sleep(0.01)
                return get_context()["conversion_id"]

        seen = await asyncio.gather(tagged("a"), tagged("b"), tagged("c"))

        assert seen == ["a", "b", "c"]
        assert get_context() == {}
