"""Unit tests for DependencyResolver."""

import traceback

import pytest

from hiera_di.application.injector import Injector
from hiera_di.application.resolver import DependencyResolver
from hiera_di.domain import (
    CircularDependencyError,
    IResolver,
    NoProviderError,
    ProviderFactoryError,
    ProviderSpec,
    Token,
)


class TestResolverBasics:
    """Test cases for resolving single providers."""

    def test_resolver_implements_interface(self):
        """Test that DependencyResolver implements IResolver."""
        root = Injector(name="root")
        assert isinstance(root._resolver, DependencyResolver)
        assert isinstance(root._resolver, IResolver)

    def test_children_share_resolver(self):
        """Test that one resolver serves the whole tree."""
        root = Injector(name="root")
        child = root.create_child()

        assert child._resolver is root._resolver
        assert child._detector is root._detector

    def test_resolve_value(self):
        """Test resolving a value provider."""
        root = Injector(name="root")
        token = Token("url")
        root.register(token, ProviderSpec.of_value("sqlite://"))

        assert root.resolve(token) == "sqlite://"

    def test_resolve_factory_with_dependencies_in_order(self):
        """Test that dependencies are passed positionally in declaration order."""
        root = Injector(name="root")
        host = Token("host")
        port = Token("port")
        address = Token("address")
        root.register_values({host: "localhost", port: 5432})
        root.register(address, ProviderSpec.of_factory(lambda h, p: f"{h}:{p}", (host, port)))

        assert root.resolve(address) == "localhost:5432"

    def test_dependencies_resolved_sequentially(self):
        """Test that dependency construction follows declaration order."""
        root = Injector(name="root")
        calls = []
        first = Token("first")
        second = Token("second")
        third = Token("third")
        combined = Token("combined")
        root.register_factories(
            {
                first: (lambda: calls.append("first") or 1, ()),
                second: (lambda: calls.append("second") or 2, ()),
                third: (lambda: calls.append("third") or 3, ()),
                combined: (lambda c, a, b: (a, b, c), (third, first, second)),
            }
        )

        assert root.resolve(combined) == (1, 2, 3)
        assert calls == ["third", "first", "second"]

    def test_missing_provider(self):
        """Test that an unregistered token raises NoProviderError."""
        root = Injector(name="root")
        token = Token("missing")

        with pytest.raises(NoProviderError) as exc_info:
            root.resolve(token)

        assert exc_info.value.token is token
        assert exc_info.value.injector_path == "root"

    def test_missing_dependency_names_dependency(self):
        """Test that a missing dependency reports the dependency token."""
        root = Injector(name="root")
        service = Token("service")
        missing = Token("missing")
        root.register(service, ProviderSpec.of_factory(lambda m: m, (missing,)))

        with pytest.raises(NoProviderError) as exc_info:
            root.resolve(service)

        assert exc_info.value.token is missing

    def test_factory_called_once(self):
        """Test that a ready instance is never rebuilt."""
        root = Injector(name="root")
        token = Token("service")
        calls = []
        root.register(token, ProviderSpec.of_factory(lambda: calls.append(1) or object()))

        first = root.resolve(token)
        second = root.resolve(token)

        assert first is second
        assert len(calls) == 1

    def test_detector_stack_empty_after_resolve(self):
        """Test that the in-flight stack is unwound after success and failure."""
        root = Injector(name="root")
        token = Token("service")
        root.register(token, ProviderSpec.of_value(1))

        root.resolve(token)
        with pytest.raises(NoProviderError):
            root.resolve(Token("missing"))

        assert root._detector.current().stack == []


class TestResolverCycles:
    """Test cases for cycle detection during resolution."""

    def test_two_token_cycle(self):
        """Test that A -> B -> A is reported as [A, B, A]."""
        root = Injector(name="root")
        service_a = Token("A")
        service_b = Token("B")
        root.register(service_a, ProviderSpec.of_factory(lambda b: b, (service_b,)))
        root.register(service_b, ProviderSpec.of_factory(lambda a: a, (service_a,)))

        with pytest.raises(CircularDependencyError) as exc_info:
            root.resolve(service_a)

        assert exc_info.value.dependency_chain == [service_a, service_b, service_a]
        assert "A -> B -> A" in str(exc_info.value)

    def test_cycle_does_not_wedge_entries(self):
        """Test that a cycle leaves no in-progress marker behind."""
        root = Injector(name="root")
        service_a = Token("A")
        service_b = Token("B")
        root.register(service_a, ProviderSpec.of_factory(lambda b: b, (service_b,)))
        root.register(service_b, ProviderSpec.of_factory(lambda a: a, (service_a,)))

        with pytest.raises(CircularDependencyError):
            root.resolve(service_a)

        assert root.cache.get(service_a) is None
        assert root.cache.get(service_b) is None
        with pytest.raises(CircularDependencyError):
            root.resolve(service_b)

    def test_alias_cycle(self):
        """Test that aliases cycling back to themselves are detected."""
        root = Injector(name="root")
        first = Token("first")
        second = Token("second")
        root.register_alias(first, second)
        root.register_alias(second, first)

        with pytest.raises(CircularDependencyError) as exc_info:
            root.resolve(first)

        assert exc_info.value.dependency_chain == [first, second, first]

    def test_cycle_across_injectors(self):
        """Test that cycles are detected regardless of which injector owns each token."""
        root = Injector(name="root")
        child = root.create_child()
        service_a = Token("A")
        service_b = Token("B")
        root.register(service_a, ProviderSpec.of_factory(lambda b: b, (service_b,)))
        child.register(service_b, ProviderSpec.of_factory(lambda a: a, (service_a,)))

        with pytest.raises(CircularDependencyError) as exc_info:
            child.resolve(service_a)

        assert exc_info.value.dependency_chain == [service_a, service_b, service_a]

    def test_reentrant_resolve_from_factory(self):
        """Test that a factory resolving its own token is a cycle, not a deadlock."""
        root = Injector(name="root")
        token = Token("service")
        root.register(token, ProviderSpec.of_factory(lambda: root.resolve(token)))

        with pytest.raises(ProviderFactoryError) as exc_info:
            root.resolve(token)

        assert isinstance(exc_info.value.cause, CircularDependencyError)
        assert exc_info.value.cause.dependency_chain == [token, token]


class TestResolverFailures:
    """Test cases for factory failures."""

    def test_factory_error_is_wrapped(self):
        """Test that factory exceptions surface as ProviderFactoryError."""
        root = Injector(name="root")
        token = Token("service")

        def factory():
            raise ValueError("bad config")

        root.register(token, ProviderSpec.of_factory(factory))

        with pytest.raises(ProviderFactoryError) as exc_info:
            root.resolve(token)

        assert exc_info.value.token is token
        assert isinstance(exc_info.value.__cause__, ValueError)

    def test_failure_is_sticky(self):
        """Test that a failed factory is not invoked again by the same injector."""
        root = Injector(name="root")
        token = Token("service")
        calls = []

        def factory():
            calls.append(1)
            raise ValueError("bad config")

        root.register(token, ProviderSpec.of_factory(factory))

        with pytest.raises(ProviderFactoryError) as first:
            root.resolve(token)
        with pytest.raises(ProviderFactoryError) as second:
            root.resolve(token)

        assert first.value.cause is second.value.cause
        assert len(calls) == 1

    def test_replayed_failure_traceback_stays_bounded(self):
        """Test that resolving a failed token repeatedly does not grow any traceback."""
        root = Injector(name="root")
        token = Token("service")

        def factory():
            raise ValueError("bad config")

        root.register(token, ProviderSpec.of_factory(factory))
        errors = []
        for _ in range(200):
            try:
                root.resolve(token)
            except ProviderFactoryError as e:
                errors.append(e)

        first_depth = len(traceback.extract_tb(errors[0].__traceback__))
        cause_depth = len(traceback.extract_tb(errors[0].cause.__traceback__))

        assert len(errors) == 200
        assert len(traceback.extract_tb(errors[-1].__traceback__)) <= first_depth
        assert len(traceback.extract_tb(errors[-1].cause.__traceback__)) == cause_depth
        assert cause_depth < 10

    def test_container_error_raised_by_factory_is_sticky(self):
        """Test that a factory failing on its own resolve call is not invoked again."""
        root = Injector(name="root")
        service = Token("service")
        missing = Token("missing")
        calls = []

        def factory():
            calls.append(1)
            return root.resolve(missing)

        root.register(service, ProviderSpec.of_factory(factory))

        with pytest.raises(ProviderFactoryError) as first:
            root.resolve(service)
        root.register_values({missing: "late"})
        with pytest.raises(ProviderFactoryError) as second:
            root.resolve(service)

        assert isinstance(first.value.cause, NoProviderError)
        assert second.value.cause is first.value.cause
        assert len(calls) == 1

    def test_dependency_failure_propagates_unchanged(self):
        """Test that the failing dependency is the one reported."""
        root = Injector(name="root")
        inner = Token("inner")
        outer = Token("outer")

        def failing():
            raise RuntimeError("inner failed")

        root.register(inner, ProviderSpec.of_factory(failing))
        root.register(outer, ProviderSpec.of_factory(lambda i: i, (inner,)))

        with pytest.raises(ProviderFactoryError) as exc_info:
            root.resolve(outer)

        assert exc_info.value.token is inner

    def test_missing_dependency_is_retried(self):
        """Test that a missing dependency does not make the dependent sticky."""
        root = Injector(name="root")
        service = Token("service")
        setting = Token("setting")
        root.register(service, ProviderSpec.of_factory(lambda s: f"service({s})", (setting,)))

        with pytest.raises(NoProviderError):
            root.resolve(service)

        root.register_values({setting: "x"})

        assert root.resolve(service) == "service(x)"

    def test_base_exception_releases_claim(self):
        """Test that interrupts do not leave an in-progress marker."""
        root = Injector(name="root")
        token = Token("service")
        attempts = []

        def factory():
            attempts.append(1)
            if len(attempts) == 1:
                raise KeyboardInterrupt
            return "ok"

        root.register(token, ProviderSpec.of_factory(factory))

        with pytest.raises(KeyboardInterrupt):
            root.resolve(token)

        assert root.cache.get(token) is None
        assert root.resolve(token) == "ok"
