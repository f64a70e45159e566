"""Tests for the ScriptBridge facade and value conversion."""

import asyncio
import threading

import pytest

from scriptloop.bridge import EngineCallable, HostFunction, ScriptBridge
from scriptloop.config import EngineConfig, ScriptLoopConfig
from scriptloop.engine import NULL, UNDEFINED, EngineFunction, EngineObject, EnginePromise, ScriptEngine, ScriptThrow
from scriptloop.errors import MarshaledScriptError, NoEventLoopError, UnsupportedValueError


SETTLE_TIMEOUT = 2.0


async def settled(awaitable):
    """Await a bridged awaitable, failing instead of hanging if it never settles."""
    return await asyncio.wait_for(awaitable, SETTLE_TIMEOUT)


class TestGlobals:
    """Tests for the globals installed on the engine."""

    def test_installed_globals(self, bridge):
        """Test setTimeout, clearTimeout and import are engine functions."""
        global_object = bridge.engine.global_object

        for name in ("setTimeout", "clearTimeout", "import"):
            assert isinstance(global_object.get(name), EngineFunction)

    def test_get_and_set_global(self, bridge):
        """Test host access to engine globals."""
        bridge.set_global("answer", 42)

        assert bridge.engine.global_object.get("answer") == 42.0
        assert bridge.get_global("answer") == 42.0
        assert bridge.get_global("missing") is None

    def test_engine_uses_drain_bridge(self, bridge):
        """Test that the engine queues jobs on the drain bridge even while it is empty."""
        assert len(bridge.drain) == 0
        assert bridge.engine.job_queue is bridge.drain

    def test_host_function_promise_without_loop(self, bridge):
        """Test that a host function building a promise outside a loop fails fast."""
        make_promise = bridge.to_engine(lambda: bridge.engine.resolved(1.0))

        with pytest.raises(NoEventLoopError):
            bridge.engine.call(make_promise, UNDEFINED, ())

    def test_existing_engine(self):
        """Test wrapping an engine created elsewhere."""
        engine = ScriptEngine()
        bridge = ScriptBridge(engine=engine)

        assert bridge.engine is engine
        assert engine.job_queue is bridge.drain

    @pytest.mark.asyncio
    async def test_dynamic_import_disabled(self, bridge):
        """Test that import() fails with a fixed diagnostic instead of a promise."""
        with pytest.raises(MarshaledScriptError) as exc_info:
            bridge.call(bridge.engine.global_object.get("import"), "./module.js")

        assert "\nError: Dynamic module import is disabled or not supported in this context" in str(
            exc_info.value
        )

    @pytest.mark.asyncio
    async def test_unbound_promise_resolve(self, bridge):
        """Test calling Promise.resolve without its constructor."""
        resolve = bridge.get_global("Promise").function.get("resolve")

        with pytest.raises(MarshaledScriptError) as exc_info:
            bridge.call(resolve, 1)

        assert str(exc_info.value) == "TypeError: undefined is not a constructor"

    def test_status_without_loop(self, bridge):
        """Test the status snapshot outside a loop."""
        status = bridge.status()

        assert status.running_loop is False
        assert status.pending_timers == 0
        assert status.pending_jobs == 0


class TestEvaluate:
    """Tests for evaluating source text."""

    def test_plain_result(self, bridge, scripts):
        """Test that results come back as host values."""
        scripts.add("1 + 2", lambda this: 3.0)

        assert bridge.evaluate("1 + 2") == 3.0

    def test_filename(self, bridge, scripts):
        """Test the filename handed to the compiler."""
        scripts.add("0", lambda this: 0.0)
        bridge.evaluate("0", "lib.js")

        assert scripts.compiled == [("0", "lib.js")]

    @pytest.mark.parametrize("thrown,expected", [
        ("anything", "anything"),
        (123.0, "123.0"),
    ])
    def test_synchronous_throw(self, bridge, scripts, thrown, expected):
        """Test that a synchronous engine throw is raised in the host."""
        def script(this):
            raise ScriptThrow(thrown)

        scripts.add("throw", script)

        with pytest.raises(MarshaledScriptError) as exc_info:
            bridge.evaluate("throw")
        assert str(exc_info.value) == expected

    def test_no_loop_error_from_script(self, bridge, scripts):
        """Test that setTimeout from evaluated code fails fast without a loop."""
        engine = bridge.engine
        scripts.add(
            "setTimeout(() => {}, 0)",
            lambda this: engine.call(this.get("setTimeout"), UNDEFINED, (EngineFunction(lambda this: None), 0.0)),
        )

        with pytest.raises(NoEventLoopError):
            bridge.evaluate("setTimeout(() => {}, 0)")


class TestValueConversion:
    """Tests for the generic host/engine conversion."""

    @pytest.mark.parametrize("value,expected", [
        (None, UNDEFINED),
        (True, True),
        ("text", "text"),
        (3, 3.0),
        (2.5, 2.5),
    ])
    def test_primitives_to_engine(self, bridge, value, expected):
        """Test primitive conversion; engine numbers are floats."""
        result = bridge.to_engine(value)

        assert result == expected
        assert type(result) is type(expected)

    def test_containers(self, bridge):
        """Test lists and dicts."""
        converted = bridge.to_engine({"items": [1, "two"], "nested": {"ok": True}})

        assert isinstance(converted, EngineObject)
        assert converted.get("items") == [1.0, "two"]
        assert converted.get("nested").get("ok") is True
        assert bridge.to_host([1.0, NULL]) == [1.0, None]

    def test_unsupported_value(self, bridge):
        """Test that values with no engine form are refused."""
        with pytest.raises(UnsupportedValueError) as exc_info:
            bridge.to_engine(object())
        assert isinstance(exc_info.value.value, object)

    def test_host_callable_round_trip(self, bridge):
        """Test that a host callable comes back as itself."""
        def greet(name):
            return f"hello {name}"

        function = bridge.to_engine(greet)

        assert isinstance(function, HostFunction)
        assert function.name == "greet"
        assert bridge.to_host(function) is greet
        assert bridge.engine.call(function, UNDEFINED, ("engine",)) == "hello engine"

    def test_host_function_keeps_engine_throw(self, bridge):
        """Test that an engine throw inside a host callable keeps its thrown value."""
        thrown = EngineObject({"code": 7.0})

        def raise_thrown(this):
            raise ScriptThrow(thrown)

        engine_thrower = EngineFunction(raise_thrown, "thrower")
        calls_engine = bridge.to_engine(lambda: bridge.engine.call(engine_thrower, UNDEFINED, ()))

        with pytest.raises(ScriptThrow) as exc_info:
            bridge.engine.call(calls_engine, UNDEFINED, ())

        assert exc_info.value.value is thrown

    def test_host_function_unconvertible_result(self, bridge):
        """Test that a result with no engine form is thrown into the engine."""
        returns_set = bridge.to_engine(lambda: {1, 2})

        with pytest.raises(ScriptThrow) as exc_info:
            bridge.engine.call(returns_set, UNDEFINED, ())

        assert "Python UnsupportedValueError: set value cannot be converted" in exc_info.value.value.get("message")

    def test_engine_function_round_trip(self, bridge):
        """Test that engine functions are exposed as host callables."""
        function = EngineFunction(lambda this, x: x * 2, "double")
        callable_ = bridge.to_host(function)

        assert isinstance(callable_, EngineCallable)
        assert callable_.__name__ == "double"
        assert callable_(21) == 42.0
        assert bridge.to_engine(callable_) is function

    def test_engine_call_gets_undefined_this(self, bridge):
        """Test that host calls pass no receiver."""
        callable_ = bridge.to_host(EngineFunction(lambda this: this))

        assert callable_() is None

    def test_host_exception_thrown_into_engine(self, bridge):
        """Test that a failing host function throws a marshaled error."""
        def fails():
            raise ValueError("host side")

        with pytest.raises(ScriptThrow) as exc_info:
            bridge.engine.call(bridge.to_engine(fails), UNDEFINED, ())

        error = exc_info.value.value
        assert error.get("message") == "Python ValueError: host side"
        assert isinstance(error.host_exception, ValueError)

    def test_engine_throw_through_host_keeps_value(self, bridge):
        """Test an engine throw crossing host code and back."""
        engine = bridge.engine
        thrown = engine.make_error("Error", "inner")

        def inner(this):
            raise ScriptThrow(thrown)

        inner_callable = bridge.to_host(EngineFunction(inner))

        with pytest.raises(ScriptThrow) as exc_info:
            engine.call(bridge.to_engine(lambda: inner_callable()), UNDEFINED, ())
        assert exc_info.value.value is thrown

    def test_host_function_missing_loop_is_not_marshaled(self, bridge):
        """Test that NoEventLoopError crosses engine frames unchanged."""
        def needs_loop():
            return bridge.engine.resolved(1.0)

        with pytest.raises(NoEventLoopError):
            bridge.engine.call(bridge.to_engine(needs_loop), UNDEFINED, ())


class TestOffload:
    """Tests for settling engine promises from worker threads."""

    @pytest.mark.asyncio
    async def test_result(self, bridge):
        """Test that the worker result fulfills the promise on the loop thread."""
        threads = []

        def work(x, y):
            threads.append(threading.get_ident())
            return x * y

        promise = bridge.offload(work, 6, 7)

        assert isinstance(promise, EnginePromise)
        assert await settled(bridge.to_host(promise)) == 42.0
        assert threads and threads[0] != threading.get_ident()

    @pytest.mark.asyncio
    async def test_failure(self, bridge):
        """Test that a worker exception rejects the promise."""
        def work():
            raise ValueError("compile failed")

        with pytest.raises(MarshaledScriptError) as exc_info:
            await settled(bridge.to_host(bridge.offload(work)))

        assert "Python ValueError: compile failed" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, ValueError)

    @pytest.mark.asyncio
    async def test_unsupported_result(self, bridge):
        """Test that an unconvertible result rejects instead of crashing the loop."""
        with pytest.raises(MarshaledScriptError) as exc_info:
            await settled(bridge.to_host(bridge.offload(object)))

        assert "UnsupportedValueError" in str(exc_info.value)

    def test_requires_loop(self, bridge):
        """Test that offloading needs a running loop."""
        with pytest.raises(NoEventLoopError):
            bridge.offload(lambda: None)


class TestRun:
    """Tests for running an entry point on a fresh loop."""

    def test_run(self, bridge):
        """Test that run drives the entry point and awaits a returned future."""
        async def main(bridge, value):
            return bridge.to_host(bridge.engine.resolved(value))

        assert bridge.run(main, "done") == "done"

    def test_run_with_timers(self, bridge):
        """Test a timer-driven promise inside run."""
        async def main(bridge):
            engine = bridge.engine
            set_timeout = engine.global_object.get("setTimeout")

            def executor(this, resolve, reject):
                engine.call(set_timeout, UNDEFINED, (resolve, 5.0, "tick"))

            return await settled(bridge.to_host(engine.new_promise(EngineFunction(executor))))

        assert bridge.run(main) == "tick"

    def test_custom_engine_name(self):
        """Test that the configured engine name reaches the loop error."""
        bridge = ScriptBridge(config=ScriptLoopConfig(engine=EngineConfig(name="PythonMonkey")))

        with pytest.raises(NoEventLoopError) as exc_info:
            bridge.engine.resolved(1.0)
        assert str(exc_info.value).startswith("PythonMonkey cannot find")
