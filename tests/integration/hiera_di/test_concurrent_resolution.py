"""Integration tests for single-flight resolution under parallel callers."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from hiera_di import CircularDependencyError, NoProviderError, ProviderFactoryError, ProviderSpec, Token, create_injector


class TestSingleFlight:
    """Concurrent first-time resolutions share one construction."""

    @pytest.mark.parametrize("callers", [2, 8, 32])
    def test_one_factory_invocation_for_parallel_callers(self, callers):
        """Test that N parallel callers get the same instance from one factory call."""
        root = create_injector(name="app")
        token = Token("expensive")
        calls = []
        start = threading.Barrier(callers)

        def factory():
            calls.append(threading.get_ident())
            time.sleep(0.05)
            return object()

        root.register(token, ProviderSpec.of_factory(factory))

        def resolve():
            start.wait()
            return root.resolve(token)

        with ThreadPoolExecutor(max_workers=callers) as executor:
            results = list(executor.map(lambda _: resolve(), range(callers)))

        assert len(calls) == 1
        assert all(result is results[0] for result in results)

    def test_parallel_callers_from_different_children(self):
        """Test single-flight at the owning injector when requests come from many children."""
        root = create_injector(name="app")
        token = Token("shared")
        calls = []
        children = [root.create_child() for _ in range(8)]
        start = threading.Barrier(len(children))

        def factory():
            calls.append(1)
            time.sleep(0.05)
            return object()

        root.register(token, ProviderSpec.of_factory(factory))

        def resolve(child):
            start.wait()
            return child.resolve(token)

        with ThreadPoolExecutor(max_workers=len(children)) as executor:
            results = list(executor.map(resolve, children))

        assert len(calls) == 1
        assert all(result is results[0] for result in results)

    def test_parallel_callers_observe_same_failure(self):
        """Test that all waiters see the same sticky failure."""
        root = create_injector(name="app")
        token = Token("broken")
        calls = []
        callers = 6
        start = threading.Barrier(callers)

        def factory():
            calls.append(1)
            time.sleep(0.05)
            raise RuntimeError("cannot connect")

        root.register(token, ProviderSpec.of_factory(factory))

        def resolve():
            start.wait()
            try:
                root.resolve(token)
            except ProviderFactoryError as e:
                return e
            return None

        with ThreadPoolExecutor(max_workers=callers) as executor:
            errors = list(executor.map(lambda _: resolve(), range(callers)))

        assert len(calls) == 1
        assert errors[0] is not None
        assert all(error.cause is errors[0].cause for error in errors)

    def test_factory_failing_on_missing_token_runs_once(self):
        """Test that a container error raised inside a factory is shared by every waiter."""
        root = create_injector(name="app")
        service = Token("service")
        missing = Token("missing")
        calls = []
        callers = 8
        start = threading.Barrier(callers)

        def factory():
            calls.append(1)
            time.sleep(0.05)
            return root.resolve(missing)

        root.register(service, ProviderSpec.of_factory(factory))

        def resolve():
            start.wait()
            try:
                root.resolve(service)
            except ProviderFactoryError as e:
                return e
            return None

        with ThreadPoolExecutor(max_workers=callers) as executor:
            errors = list(executor.map(lambda _: resolve(), range(callers)))

        assert len(calls) == 1
        assert all(isinstance(error, ProviderFactoryError) for error in errors)
        assert len({id(error.cause) for error in errors}) == 1
        assert isinstance(errors[0].cause, NoProviderError)

    def test_distinct_tokens_build_in_parallel(self):
        """Test that different tokens do not wait on each other."""
        root = create_injector(name="app")
        first = Token("first")
        second = Token("second")
        both_started = threading.Barrier(2, timeout=5)

        def factory():
            # Deadlocks (and times out) if the two constructions were serialized.
            both_started.wait()
            return object()

        root.register_factories({first: (factory, ()), second: (factory, ())})

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(root.resolve, token) for token in (first, second)]
            results = [future.result(timeout=10) for future in futures]

        assert results[0] is not results[1]

    def test_same_token_at_different_injectors_is_independent(self):
        """Test that each owning injector builds its own instance."""
        root = create_injector(name="app")
        token = Token("scoped")
        scopes = [root.create_child() for _ in range(4)]
        for scope in scopes:
            scope.register(token, ProviderSpec.of_factory(object))

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(lambda scope: scope.resolve(token), scopes))

        assert len({id(result) for result in results}) == 4


class TestCrossThreadCycles:
    """Cycles spread over two threads are reported instead of deadlocking."""

    def test_two_threads_entering_a_cycle_from_opposite_ends(self):
        """Test that at least one thread reports the cycle and none hangs."""
        root = create_injector(name="app")
        service_a = Token("A")
        service_b = Token("B")
        entered = threading.Barrier(2, timeout=5)

        def build_a(b):
            return ("A", b)

        def build_b(a):
            return ("B", a)

        def slow_value():
            entered.wait()
            return "gate"

        gate_a = Token("gate_a")
        gate_b = Token("gate_b")
        # Each thread claims its first token, then meets the other thread before
        # asking for the token the other one holds.
        root.register_factories(
            {
                gate_a: (slow_value, ()),
                gate_b: (slow_value, ()),
                service_a: (lambda gate, b: build_a(b), (gate_a, service_b)),
                service_b: (lambda gate, a: build_b(a), (gate_b, service_a)),
            }
        )

        with ThreadPoolExecutor(max_workers=2) as executor:
            futures = [executor.submit(root.resolve, token) for token in (service_a, service_b)]
            outcomes = []
            for future in futures:
                try:
                    outcomes.append(future.result(timeout=10))
                except CircularDependencyError as e:
                    outcomes.append(e)

        assert any(isinstance(outcome, CircularDependencyError) for outcome in outcomes)
        for outcome in outcomes:
            assert isinstance(outcome, CircularDependencyError)
