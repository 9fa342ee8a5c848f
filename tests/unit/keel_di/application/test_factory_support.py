"""Unit tests for FactoryComponentSupport."""

import pytest

from keel_di.application.factory_support import FactoryComponentSupport, is_factory_dereference, strip_factory_prefix
from keel_di.application.singleton_registry import SingletonRegistry
from keel_di.domain import NULL, ComponentCreationError, FactoryComponent, TypeMismatchError


class Product:
    pass


class ProductFactory(FactoryComponent):
    object_type = Product

    def __init__(self, shared=True):
        self.shared = shared
        self.calls = 0

    def get_object(self):
        self.calls += 1
        return Product()

    def is_singleton(self):
        return self.shared


class NothingFactory(FactoryComponent):
    def get_object(self):
        return None


class BrokenFactory(FactoryComponent):
    def get_object(self):
        raise RuntimeError("no connection")


class Wrapper:
    def __init__(self, target):
        self.target = target


@pytest.fixture
def registry():
    """Create a singleton registry."""
    return SingletonRegistry()


@pytest.fixture
def support(registry):
    """Create factory support without post-processing."""
    return FactoryComponentSupport(registry, lambda produced, name: produced)


class TestNames:
    """Test cases for the factory dereference prefix."""

    def test_prefix_helpers(self):
        """Test detecting and stripping the & prefix."""
        assert is_factory_dereference("&factory")
        assert not is_factory_dereference("factory")
        assert strip_factory_prefix("&&factory") == "factory"


class TestObjectForInstance:
    """Test cases for unwrapping factory components."""

    def test_plain_instance_unchanged(self, support):
        """Test that ordinary components pass through."""
        instance = object()

        assert support.object_for_instance(instance, "plain", "plain") is instance

    def test_dereference_returns_factory(self, support):
        """Test that &name returns the factory itself."""
        factory = ProductFactory()

        assert support.object_for_instance(factory, "&products", "products") is factory

    def test_dereference_of_non_factory_raises(self, support):
        """Test that &name on an ordinary component raises TypeMismatchError."""
        with pytest.raises(TypeMismatchError):
            support.object_for_instance(object(), "&plain", "plain")

    def test_shared_product_cached(self, registry, support):
        """Test that a singleton factory's product is produced once."""
        factory = ProductFactory()
        registry.register_singleton("products", factory)

        first = support.object_for_instance(factory, "products", "products")
        second = support.object_for_instance(factory, "products", "products")

        assert isinstance(first, Product)
        assert first is second
        assert factory.calls == 1

    def test_non_shared_product_created_each_time(self, registry, support):
        """Test that a non-singleton factory produces on every request."""
        factory = ProductFactory(shared=False)
        registry.register_singleton("products", factory)

        first = support.object_for_instance(factory, "products", "products")

        assert support.object_for_instance(factory, "products", "products") is not first
        assert factory.calls == 2

    def test_none_product_is_null(self, support):
        """Test that a None product is represented by the NULL marker."""
        assert support.object_for_instance(NothingFactory(), "nothing", "nothing") is NULL

    def test_failing_factory_wrapped(self, support):
        """Test that factory failures become ComponentCreationError."""
        with pytest.raises(ComponentCreationError) as exc_info:
            support.object_for_instance(BrokenFactory(), "broken", "broken")

        assert "no connection" in str(exc_info.value)
        assert "'broken'" in str(exc_info.value)

    def test_products_are_post_processed(self, registry):
        """Test that products pass through the after-initialization chain."""
        support = FactoryComponentSupport(registry, lambda produced, name: Wrapper(produced))
        registry.register_singleton("products", ProductFactory())

        produced = support.get_object(registry.get_singleton("products"), "products")

        assert isinstance(produced, Wrapper)
        assert isinstance(produced.target, Product)

    def test_remove_drops_cached_product(self, registry, support):
        """Test that removing forces a new product."""
        factory = ProductFactory()
        registry.register_singleton("products", factory)
        first = support.get_object(factory, "products")

        support.remove("products")

        assert support.get_object(factory, "products") is not first

    def test_object_type(self):
        """Test reading the declared product type."""
        assert FactoryComponentSupport.object_type(ProductFactory) is Product
        assert FactoryComponentSupport.object_type(NothingFactory) is None
