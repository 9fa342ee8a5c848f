"""Unit tests for ValueResolver."""

from typing import Any, Optional

import pytest

from keel_di.application import DIContainer
from keel_di.domain import (
    NULL,
    ArrayValue,
    ComponentDefinition,
    IExpressionEvaluator,
    ListValue,
    MapValue,
    MergedDefinition,
    NotFoundError,
    PropertiesValue,
    SetValue,
    TypeConversionError,
    UnsatisfiedDependencyError,
    autowired,
    literal,
    nested,
    ref,
    type_ref,
)


class Repository:
    pass


class UpperEvaluator(IExpressionEvaluator):
    """Evaluator changing every text it sees."""

    def evaluate(self, text: str, definition: Optional[MergedDefinition] = None) -> Any:
        return text.upper()


class FailingEvaluator(IExpressionEvaluator):
    def evaluate(self, text: str, definition: Optional[MergedDefinition] = None) -> Any:
        raise ValueError("bad expression")


@pytest.fixture
def container():
    """Create an empty container."""
    return DIContainer()


@pytest.fixture
def owner():
    """Create the merged definition of the component being built."""
    return MergedDefinition.from_definition(ComponentDefinition(component_type=object))


class TestPlainValues:
    """Test cases for values that need no resolution."""

    def test_plain_object_unchanged(self, container, owner):
        """Test that non-descriptor values are returned as-is."""
        value = object()

        assert container.value_resolver.resolve("svc", owner, "property 'x'", value) is value

    def test_null_marker_becomes_none(self, container, owner):
        """Test that the NULL marker resolves to None."""
        assert container.value_resolver.resolve("svc", owner, "property 'x'", NULL) is None


class TestLiterals:
    """Test cases for literal values."""

    def test_typed_literal_converted(self, container, owner):
        """Test that a literal with a target type is converted."""
        assert container.value_resolver.resolve("svc", owner, "property 'port'", literal("8080", int)) == 8080

    def test_untyped_literal_stays_text(self, container, owner):
        """Test that a literal without target type stays a string."""
        value = literal("8080")

        assert container.value_resolver.resolve("svc", owner, "property 'port'", value) == "8080"
        assert value.dynamic is False

    def test_evaluated_literal_marked_dynamic(self, owner):
        """Test that a literal changed by evaluation is marked dynamic."""
        container = DIContainer(expression_evaluator=UpperEvaluator())
        value = literal("abc")

        assert container.value_resolver.resolve("svc", owner, "property 'x'", value) == "ABC"
        assert value.dynamic is True

    def test_unconvertible_literal_raises(self, container, owner):
        """Test that a failed conversion keeps its kind and gains the owner."""
        with pytest.raises(TypeConversionError) as exc_info:
            container.value_resolver.resolve("svc", owner, "property 'port'", literal("eighty", int))

        assert exc_info.value.component_chain == ["svc"]

    def test_evaluator_failure_wrapped(self, owner):
        """Test that non-engine errors become UnsatisfiedDependencyError."""
        container = DIContainer(expression_evaluator=FailingEvaluator())

        with pytest.raises(UnsatisfiedDependencyError) as exc_info:
            container.value_resolver.resolve("svc", owner, "property 'x'", literal("${x}"))

        assert exc_info.value.injection_point == "property 'x'"
        assert "bad expression" in str(exc_info.value)


class TestReferences:
    """Test cases for component and type references."""

    def test_reference_records_dependent(self, container, owner):
        """Test that resolving a reference records the owner as dependent."""
        repository = Repository()
        container.register_singleton("repo", repository)

        resolved = container.value_resolver.resolve("svc", owner, "property 'repo'", ref("repo"))

        assert resolved is repository
        assert container.registry.dependents_of("repo") == ["svc"]

    def test_missing_reference_raises(self, container, owner):
        """Test that a dangling reference raises NotFoundError with context."""
        with pytest.raises(NotFoundError) as exc_info:
            container.value_resolver.resolve("svc", owner, "property 'repo'", ref("repo"))

        assert str(exc_info.value).startswith("Error creating component 'svc'")

    def test_type_reference(self, container, owner):
        """Test resolving the unique component of a type."""
        repository = Repository()
        container.register_singleton("repo", repository)

        resolved = container.value_resolver.resolve("svc", owner, "property 'repo'", type_ref(Repository))

        assert resolved is repository
        assert container.registry.dependents_of("repo") == ["svc"]

    def test_optional_type_reference(self, container, owner):
        """Test that a non-required type reference without candidate is None."""
        resolved = container.value_resolver.resolve("svc", owner, "property 'repo'", type_ref(Repository, required=False))

        assert resolved is None

    def test_autowire_marker_needs_declared_type(self, container, owner):
        """Test that an autowire marker without declared type raises."""
        with pytest.raises(UnsatisfiedDependencyError):
            container.value_resolver.resolve("svc", owner, "property 'repo'", autowired())

    def test_autowire_marker_with_declared_type(self, container, owner):
        """Test that an autowire marker resolves by the slot's declared type."""
        repository = Repository()
        container.register_singleton("repo", repository)

        resolved = container.value_resolver.resolve("svc", owner, "property 'repo'", autowired(), Repository, "repo")

        assert resolved is repository


class TestNested:
    """Test cases for inner definitions."""

    def test_nested_definition_built(self, container, owner):
        """Test that an inner definition is built for its owner."""
        resolved = container.value_resolver.resolve(
            "svc", owner, "property 'repo'", nested(ComponentDefinition(component_type=Repository))
        )

        assert isinstance(resolved, Repository)

    def test_nested_instances_are_not_shared(self, container, owner):
        """Test that each resolution builds a new inner instance."""
        value = nested(ComponentDefinition(component_type=Repository))

        first = container.value_resolver.resolve("svc", owner, "property 'repo'", value)

        assert container.value_resolver.resolve("svc", owner, "property 'repo'", value) is not first


class TestCollections:
    """Test cases for collection values."""

    def test_list_with_element_type(self, container, owner):
        """Test that list items are resolved and converted."""
        value = ListValue(items=[literal("1"), "2", 3], element_type=int)

        assert container.value_resolver.resolve("svc", owner, "property 'ports'", value) == [1, 2, 3]

    def test_list_of_references(self, container, owner):
        """Test that list items may reference components."""
        repository = Repository()
        container.register_singleton("repo", repository)

        resolved = container.value_resolver.resolve("svc", owner, "property 'repos'", ListValue(items=[ref("repo")]))

        assert resolved == [repository]

    def test_set(self, container, owner):
        """Test that set values resolve to a set."""
        value = SetValue(items=[literal("a"), literal("b"), literal("a")])

        assert container.value_resolver.resolve("svc", owner, "property 'tags'", value) == {"a", "b"}

    def test_array(self, container, owner):
        """Test that array values resolve to a tuple."""
        value = ArrayValue(items=[literal("1.5"), literal("2")], element_type=float)

        assert container.value_resolver.resolve("svc", owner, "property 'weights'", value) == (1.5, 2.0)

    def test_map_with_types(self, container, owner):
        """Test that map keys and values are resolved and converted."""
        value = MapValue(entries=[(literal("1"), literal("true"))], key_type=int, value_type=bool)

        assert container.value_resolver.resolve("svc", owner, "property 'flags'", value) == {1: True}

    def test_item_error_label(self, container, owner):
        """Test that element conversion errors name the index."""
        value = ListValue(items=[literal("1"), literal("x")], element_type=int)

        with pytest.raises(TypeConversionError) as exc_info:
            container.value_resolver.resolve("svc", owner, "property 'ports'", value)

        assert "with index [1]" in str(exc_info.value)

    def test_properties_evaluated(self, owner):
        """Test that properties values run through the evaluator."""
        container = DIContainer(expression_evaluator=UpperEvaluator())
        value = PropertiesValue(entries={"mode": "fast"})

        assert container.value_resolver.resolve("svc", owner, "property 'options'", value) == {"mode": "FAST"}
