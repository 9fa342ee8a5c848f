"""Unit tests for PropertyPopulator, exercised through the container."""

from typing import List, Optional

import pytest

from keel_di.application import DIContainer
from keel_di.domain import (
    AutowireMode,
    ComponentDefinition,
    DependencyCheck,
    InterceptorKind,
    InvalidDefinitionError,
    PropertyValue,
    UnsatisfiedDependencyError,
    literal,
    ref,
)


class Repository:
    pass


class Mailer:
    pass


class Notifier:
    repository: Repository
    mailer: Optional[Mailer] = None
    retries: int = 3
    name: str = "notifier"

    def __init__(self):
        self._channels: List[str] = []

    @property
    def channels(self) -> List[str]:
        return self._channels

    @channels.setter
    def channels(self, value: List[str]) -> None:
        self._channels = list(value)


@pytest.fixture
def container():
    """Create a container with a repository component."""
    container = DIContainer()
    container.register_definition("repository", ComponentDefinition(component_type=Repository))
    return container


class TestExplicitProperties:
    """Test cases for declared property values."""

    def test_literals_converted_to_annotation(self, container):
        """Test that literal values are converted to the attribute's type."""
        container.register_definition(
            "notifier",
            ComponentDefinition(component_type=Notifier)
            .add_property("retries", literal("5"))
            .add_property("repository", ref("repository")),
        )

        notifier = container.get("notifier")

        assert notifier.retries == 5
        assert notifier.repository is container.get("repository")
        assert container.registry.dependents_of("repository") == ["notifier"]

    def test_property_setter(self, container):
        """Test assigning through a property with a setter."""
        container.register_definition(
            "notifier", ComponentDefinition(component_type=Notifier).add_property("channels", ("mail", "sms"))
        )

        assert container.get("notifier").channels == ["mail", "sms"]

    def test_unknown_property_raises(self, container):
        """Test that a property missing from the class raises InvalidDefinitionError."""
        container.register_definition(
            "notifier", ComponentDefinition(component_type=Notifier).add_property("colour", literal("red"))
        )

        with pytest.raises(InvalidDefinitionError) as exc_info:
            container.get("notifier")

        assert "colour" in str(exc_info.value)

    def test_converted_literal_cached_on_definition(self, container):
        """Test that a converted static literal is remembered on the merged definition."""
        container.register_definition(
            "notifier",
            ComponentDefinition(component_type=Notifier, scope="prototype").add_property("retries", literal("7")),
        )

        container.get("notifier")

        prop = container.merger.get_merged_definition("notifier").get_property("retries")
        assert prop.is_converted
        assert prop.converted_value == 7


class TestAutowiring:
    """Test cases for property autowiring."""

    def test_by_name(self, container):
        """Test that collaborator properties are matched to component names."""
        container.register_definition(
            "notifier", ComponentDefinition(component_type=Notifier, autowire_mode=AutowireMode.BY_NAME)
        )

        notifier = container.get("notifier")

        assert notifier.repository is container.get("repository")
        assert notifier.mailer is None
        assert notifier.retries == 3

    def test_by_type(self, container):
        """Test that collaborator properties are matched by type."""
        container.register_definition("smtp", ComponentDefinition(component_type=Mailer))
        container.register_definition(
            "notifier", ComponentDefinition(component_type=Notifier, autowire_mode=AutowireMode.BY_TYPE)
        )

        notifier = container.get("notifier")

        assert notifier.repository is container.get("repository")
        assert notifier.mailer is container.get("smtp")
        assert set(container.registry.dependencies_of("notifier")) == {"repository", "smtp"}

    def test_explicit_value_wins_over_autowiring(self, container):
        """Test that declared properties are not autowired."""
        other = Repository()
        container.register_definition(
            "notifier",
            ComponentDefinition(component_type=Notifier, autowire_mode=AutowireMode.BY_TYPE).add_property(
                "repository", other
            ),
        )

        assert container.get("notifier").repository is other


class TestDependencyCheck:
    """Test cases for the unset-property check."""

    @pytest.mark.parametrize(
        "check, missing",
        [
            (DependencyCheck.OBJECTS, "mailer"),
            (DependencyCheck.SIMPLE, "retries"),
            (DependencyCheck.ALL, "repository"),
        ],
    )
    def test_unset_properties_raise(self, container, check, missing):
        """Test that unset properties of the checked category raise."""
        definition = ComponentDefinition(component_type=Notifier, dependency_check=check)
        if check is DependencyCheck.OBJECTS:
            definition.add_property("repository", ref("repository"))
        container.register_definition("notifier", definition)

        with pytest.raises(UnsatisfiedDependencyError) as exc_info:
            container.get("notifier")

        assert exc_info.value.injection_point == f"property '{missing}'"

    def test_all_set_passes(self, container):
        """Test that a fully configured component passes the check."""
        definition = (
            ComponentDefinition(component_type=Notifier, dependency_check=DependencyCheck.SIMPLE)
            .add_property("retries", literal("1"))
            .add_property("name", literal("n"))
            .add_property("channels", [])
        )
        container.register_definition("notifier", definition)

        assert container.get("notifier").name == "n"


class TestInterceptors:
    """Test cases for interceptors around property wiring."""

    def test_after_instantiation_can_skip_wiring(self, container):
        """Test that returning False from after-instantiation skips wiring."""
        container.register_interceptor(InterceptorKind.AFTER_INSTANTIATION, lambda instance, name: False)
        container.register_definition(
            "notifier", ComponentDefinition(component_type=Notifier).add_property("retries", literal("9"))
        )

        assert container.get("notifier").retries == 3

    def test_property_values_can_be_replaced(self, container):
        """Test that property-value interceptors may rewrite the values."""

        def rewrite(values, instance, name):
            return [PropertyValue(name="name", value="rewritten")]

        container.register_interceptor(InterceptorKind.PROPERTY_VALUES, rewrite)
        container.register_definition(
            "notifier", ComponentDefinition(component_type=Notifier).add_property("retries", literal("9"))
        )

        notifier = container.get("notifier")

        assert notifier.name == "rewritten"
        assert notifier.retries == 3
