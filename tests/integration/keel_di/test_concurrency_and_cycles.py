"""Integration tests for concurrent creation and circular references."""

import threading
import time

import pytest

from keel_di import (
    CircularCreationError,
    ComponentDefinition,
    DIContainer,
    EngineSettings,
    UnsatisfiedDependencyError,
    ref,
)


class SlowService:
    """Takes a while to construct and counts its instances."""

    instances = 0
    lock = threading.Lock()

    def __init__(self):
        time.sleep(0.05)
        with SlowService.lock:
            SlowService.instances += 1


class Order:
    customer: object = None


class Customer:
    orders: object = None


class Inventory:
    """Slow to construct; wired to a Warehouse through a property."""

    warehouse: object = None

    def __init__(self):
        time.sleep(0.1)


class Warehouse:
    """Slow to construct; wired to an Inventory through a property."""

    inventory: object = None

    def __init__(self):
        time.sleep(0.1)


class Parent:
    def __init__(self, child: object):
        self.child = child


class Child:
    def __init__(self, parent: object):
        self.parent = parent


def register_mutual_properties(container, scope=""):
    container.register_definition(
        "order", ComponentDefinition(component_type=Order, scope=scope).add_property("customer", ref("customer"))
    )
    container.register_definition(
        "customer", ComponentDefinition(component_type=Customer, scope=scope).add_property("orders", ref("order"))
    )


class TestConcurrentCreation:
    """Test singleton creation from several threads."""

    def test_singleton_created_once_across_threads(self):
        """Test that racing threads all receive the single instance."""
        SlowService.instances = 0
        container = DIContainer()
        container.register_definition("slow", ComponentDefinition(component_type=SlowService))
        results = []
        errors = []
        start = threading.Barrier(8)

        def worker():
            start.wait()
            try:
                results.append(container.get("slow"))
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(results) == 8
        assert all(result is results[0] for result in results)
        assert SlowService.instances == 1

    def test_prototypes_created_per_thread(self):
        """Test that prototypes are never shared between threads."""
        container = DIContainer()
        container.register_definition("order", ComponentDefinition(component_type=Order, scope="prototype"))
        results = []

        threads = [threading.Thread(target=lambda: results.append(container.get("order"))) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len({id(result) for result in results}) == 4

    def test_mutual_singletons_created_from_two_threads(self):
        """Test that two threads building each side of a property cycle both finish."""
        container = DIContainer()
        container.register_definition(
            "inventory",
            ComponentDefinition(component_type=Inventory).add_property("warehouse", ref("warehouse")),
        )
        container.register_definition(
            "warehouse",
            ComponentDefinition(component_type=Warehouse).add_property("inventory", ref("inventory")),
        )
        results = {}
        errors = []
        start = threading.Barrier(2)

        def worker(name):
            start.wait()
            try:
                results[name] = container.get(name)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("inventory", "warehouse")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert not any(thread.is_alive() for thread in threads)
        assert errors == []
        inventory, warehouse = results["inventory"], results["warehouse"]
        assert inventory.warehouse is warehouse
        assert warehouse.inventory is inventory

    def test_mutual_constructors_from_two_threads_fail(self):
        """Test that two threads building a constructor cycle fail instead of blocking."""
        container = DIContainer()
        container.register_definition("parent", ComponentDefinition(component_type=Parent).add_argument(ref("child")))
        container.register_definition("child", ComponentDefinition(component_type=Child).add_argument(ref("parent")))
        errors = []
        start = threading.Barrier(2)

        def worker(name):
            start.wait()
            try:
                container.get(name)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("parent", "child")]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=5)

        assert not any(thread.is_alive() for thread in threads)
        assert len(errors) == 2
        assert all(isinstance(error, CircularCreationError) for error in errors)
        assert container.registry.singleton_count() == 0


class TestCircularReferences:
    """Test circular references across the creation pipeline."""

    def test_singleton_property_cycle(self):
        """Test that singletons referring to each other by property are wired."""
        container = DIContainer()
        register_mutual_properties(container)

        order = container.get("order")

        assert order.customer.orders is order
        assert container.get("customer") is order.customer

    def test_singleton_property_cycle_disabled(self):
        """Test that the cycle fails once early references are switched off."""
        container = DIContainer(settings=EngineSettings(allow_circular_references=False))
        register_mutual_properties(container)

        with pytest.raises(CircularCreationError) as exc_info:
            container.get("order")

        assert exc_info.value.component_chain[0] == "order"
        assert "customer" in exc_info.value.component_chain
        assert not container.registry.contains_singleton("order")
        assert not container.registry.contains_singleton("customer")

    def test_prototype_cycle_fails(self):
        """Test that prototypes referring to each other cannot be built."""
        container = DIContainer()
        register_mutual_properties(container, scope="prototype")

        with pytest.raises(CircularCreationError):
            container.get("order")

    def test_constructor_cycle_fails(self):
        """Test that singletons requiring each other in constructors fail and roll back."""
        container = DIContainer()
        container.register_definition("parent", ComponentDefinition(component_type=Parent).add_argument(ref("child")))
        container.register_definition("child", ComponentDefinition(component_type=Child).add_argument(ref("parent")))

        with pytest.raises(CircularCreationError) as exc_info:
            container.get("parent")

        assert "parent" in str(exc_info.value)
        assert container.registry.singleton_count() == 0

    def test_depends_on_cycle_fails(self):
        """Test that components depending on each other explicitly are rejected."""
        container = DIContainer()
        container.register_definition("a", ComponentDefinition(component_type=Order, depends_on=["b"]))
        container.register_definition("b", ComponentDefinition(component_type=Customer, depends_on=["a"]))

        with pytest.raises(CircularCreationError, match="Circular depends-on"):
            container.get("a")

    def test_singleton_and_prototype_cycle(self):
        """Test that a singleton may hold a prototype that points back at it."""
        container = DIContainer()
        container.register_definition(
            "order", ComponentDefinition(component_type=Order).add_property("customer", ref("customer"))
        )
        container.register_definition(
            "customer",
            ComponentDefinition(component_type=Customer, scope="prototype").add_property("orders", ref("order")),
        )

        order = container.get("order")

        assert order.customer.orders is order
        assert container.get("customer") is not order.customer

    def test_missing_depends_on(self):
        """Test that depending on an unknown component is reported."""
        container = DIContainer()
        container.register_definition("a", ComponentDefinition(component_type=Order, depends_on=["missing"]))

        with pytest.raises(UnsatisfiedDependencyError, match="missing"):
            container.get("a")
