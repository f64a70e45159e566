"""Tests for setTimeout/clearTimeout on the host loop."""

import asyncio
import math

import pytest

from scriptloop.bridge import to_number
from scriptloop.engine import NULL, UNDEFINED, EngineFunction, EngineObject, ScriptThrow
from scriptloop.errors import MarshaledScriptError, NoEventLoopError

NO_LOOP = "ScriptLoop cannot find a running Python event-loop to make asynchronous calls."


def set_timeout(bridge, *args):
    engine = bridge.engine
    return engine.call(engine.global_object.get("setTimeout"), UNDEFINED, args)


def clear_timeout(bridge, *args):
    engine = bridge.engine
    return engine.call(engine.global_object.get("clearTimeout"), UNDEFINED, args)


def recorder(calls, label=None):
    def native(this, *args):
        calls.append(label if label is not None else (this, args))
    return EngineFunction(native)


class TestSetTimeout:
    """Tests for registering and firing timers."""

    @pytest.mark.asyncio
    async def test_returns_positive_increasing_handles(self, bridge):
        """Test that handles are positive integral numbers, never reused."""
        first = set_timeout(bridge, recorder([]), 1.0)
        second = set_timeout(bridge, recorder([]), 1.0)
        clear_timeout(bridge, first)
        third = set_timeout(bridge, recorder([]), 1.0)

        assert isinstance(first, float)
        assert first > 0 and first.is_integer()
        assert first < second < third

    @pytest.mark.asyncio
    async def test_never_fires_synchronously(self, bridge):
        """Test that even a zero delay waits for the loop."""
        calls = []
        set_timeout(bridge, recorder(calls), 0.0)

        assert calls == []
        await asyncio.sleep(0.01)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_fires_after_delay(self, bridge):
        """Test that a timer never fires before its delay has elapsed."""
        loop = asyncio.get_running_loop()
        fired_at = []
        start = loop.time()
        set_timeout(bridge, EngineFunction(lambda this: fired_at.append(loop.time())), 50.0)

        await asyncio.sleep(0.02)
        assert fired_at == []
        await asyncio.sleep(0.1)
        assert len(fired_at) == 1
        assert fired_at[0] - start >= 0.05

    @pytest.mark.asyncio
    async def test_receiver_and_extra_arguments(self, bridge):
        """Test that callbacks get the global object and forwarded arguments."""
        calls = []
        set_timeout(bridge, recorder(calls), 100.0, 90.0, 91.0, 92.0)

        await asyncio.sleep(0.2)

        this, args = calls[0]
        assert this is bridge.engine.global_object
        assert len(args) == 3
        assert args[2] == 92.0

    @pytest.mark.asyncio
    async def test_string_callback_is_evaluated(self, bridge, scripts):
        """Test that source text runs as top-level code."""
        scripts.add("globalThis.flag = true", lambda this: this.set("flag", True))

        set_timeout(bridge, "globalThis.flag = true", 5.0)
        await asyncio.sleep(0.05)

        assert bridge.engine.global_object.get("flag") is True
        assert scripts.compiled == [("globalThis.flag = true", "<evaluate>")]

    @pytest.mark.asyncio
    async def test_non_callable_callback(self, bridge):
        """Test that a callback that is neither function nor string throws."""
        with pytest.raises(ScriptThrow) as exc_info:
            set_timeout(bridge, 42.0, 10.0)

        assert exc_info.value.value.name == "TypeError"
        assert bridge.timers.pending_count == 0

    @pytest.mark.asyncio
    async def test_entry_discarded_after_firing(self, bridge):
        """Test that fired timers leave the registry."""
        set_timeout(bridge, recorder([]), 0.0)
        assert bridge.status().pending_timers == 1

        await asyncio.sleep(0.01)
        assert bridge.status().pending_timers == 0


class TestTimerOrdering:
    """Tests for timer and job ordering."""

    @pytest.mark.asyncio
    async def test_equal_delays_fire_in_registration_order(self, bridge):
        """Test FIFO tie-break between timers with the same delay."""
        order = []
        for label in ("a", "b", "c"):
            set_timeout(bridge, recorder(order, label), 10.0)

        await asyncio.sleep(0.05)
        assert order == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_shorter_delay_fires_first(self, bridge):
        """Test that callbacks fire in the order their delays elapse."""
        order = []
        set_timeout(bridge, recorder(order, "slow"), 30.0)
        set_timeout(bridge, recorder(order, "fast"), 5.0)

        await asyncio.sleep(0.08)
        assert order == ["fast", "slow"]

    @pytest.mark.asyncio
    async def test_jobs_drain_before_timers(self, bridge):
        """Test that pending promise jobs run before an elapsed timer."""
        order = []
        set_timeout(bridge, recorder(order, "timer"), 0.0)
        bridge.engine.resolved(1.0).then(EngineFunction(lambda this, v: order.append("job")))

        await asyncio.sleep(0.01)
        assert order == ["job", "timer"]

    @pytest.mark.asyncio
    async def test_jobs_from_timer_run_before_next_timer(self, bridge):
        """Test the job checkpoint after each timer callback."""
        order = []
        engine = bridge.engine

        def first(this):
            order.append("first")
            engine.resolved(1.0).then(EngineFunction(lambda this, v: order.append("job")))

        set_timeout(bridge, EngineFunction(first), 10.0)
        set_timeout(bridge, recorder(order, "second"), 10.0)

        await asyncio.sleep(0.05)
        assert order == ["first", "job", "second"]


class TestClearTimeout:
    """Tests for cancellation."""

    @pytest.mark.asyncio
    async def test_cleared_timer_never_fires(self, bridge):
        """Test that clearing before the deadline prevents the callback."""
        calls = []
        handle = set_timeout(bridge, recorder(calls), 10.0)

        assert clear_timeout(bridge, handle) is UNDEFINED
        await asyncio.sleep(0.05)

        assert calls == []
        assert bridge.timers.pending_count == 0

    @pytest.mark.asyncio
    async def test_clear_from_earlier_timer(self, bridge):
        """Test clearing a timer that is due in the same batch."""
        calls = []
        later = []

        def canceller(this):
            clear_timeout(bridge, later[0])

        set_timeout(bridge, EngineFunction(canceller), 10.0)
        later.append(set_timeout(bridge, recorder(calls), 10.0))

        await asyncio.sleep(0.05)
        assert calls == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("handle", [
        math.nan,
        -1.0,
        999.0,
        1.5,
        "not a handle",
        UNDEFINED,
        NULL,
        EngineObject(),
    ])
    async def test_invalid_handles_are_ignored(self, bridge, handle):
        """Test that clearTimeout never throws for any handle value."""
        calls = []
        set_timeout(bridge, recorder(calls), 0.0)

        assert clear_timeout(bridge, handle) is UNDEFINED
        await asyncio.sleep(0.01)
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_no_argument(self, bridge):
        """Test clearTimeout()."""
        assert clear_timeout(bridge) is UNDEFINED

    @pytest.mark.asyncio
    async def test_clear_after_firing(self, bridge):
        """Test that a stale handle is a no-op."""
        handle = set_timeout(bridge, recorder([]), 0.0)
        await asyncio.sleep(0.01)

        assert clear_timeout(bridge, handle) is UNDEFINED


class TestTimerFailures:
    """Tests for errors around timers."""

    def test_set_timeout_without_loop(self, bridge):
        """Test that setTimeout fails fast outside a running loop."""
        with pytest.raises(NoEventLoopError) as exc_info:
            set_timeout(bridge, recorder([]), 10.0)

        assert str(exc_info.value) == NO_LOOP
        assert bridge.timers.pending_count == 0

    def test_clear_timeout_without_loop(self, bridge):
        """Test that clearTimeout also needs a running loop."""
        with pytest.raises(NoEventLoopError):
            clear_timeout(bridge, 1.0)

    @pytest.mark.asyncio
    async def test_callback_error_goes_to_exception_handler(self, bridge):
        """Test that a throwing callback is reported and later timers still fire."""
        loop = asyncio.get_running_loop()
        reports = []
        loop.set_exception_handler(lambda loop, context: reports.append(context))
        calls = []
        engine = bridge.engine

        def failing(this):
            raise ScriptThrow(engine.make_error("Error", "timer failed"))

        try:
            handle = set_timeout(bridge, EngineFunction(failing), 0.0)
            set_timeout(bridge, recorder(calls), 5.0)
            await asyncio.sleep(0.05)
        finally:
            loop.set_exception_handler(None)

        assert len(reports) == 1
        assert isinstance(reports[0]["exception"], MarshaledScriptError)
        assert "timer failed" in str(reports[0]["exception"])
        assert reports[0]["timer_handle"] == int(handle)
        assert len(calls) == 1


class TestDelayCoercion:
    """Tests for delay and handle number coercion."""

    @pytest.mark.parametrize("delay,expected", [
        (50.0, 50.0),
        ("50", 50.0),
        ("12.5px", 12.5),
        ("  7", 7.0),
        ("abc", 0.0),
        (-5.0, 0.0),
        (math.nan, 0.0),
        (math.inf, 0.0),
        (3e9, 0.0),
        (UNDEFINED, 0.0),
        (NULL, 0.0),
        (True, 1.0),
        (EngineObject(), 0.0),
    ])
    def test_coerce_delay(self, bridge, delay, expected):
        """Test that invalid delays clamp to the minimum."""
        assert bridge.timers.coerce_delay(delay) == expected

    def test_to_number(self):
        """Test parseFloat-like string handling."""
        assert to_number("1e3") == 1000.0
        assert to_number(".5") == 0.5
        assert math.isnan(to_number(""))
        assert math.isnan(to_number(UNDEFINED))
        assert to_number(NULL) == 0.0
