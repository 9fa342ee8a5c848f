"""Unit tests for domain models."""

from keel_di.domain import (
    NULL,
    ComponentDefinition,
    DependencyDescriptor,
    ExecutableCandidate,
    MergedDefinition,
    NullInstance,
    ParameterSpec,
    PropertyValue,
    Scope,
    literal,
    ref,
)


class TestNullMarker:
    """Test cases for the NULL marker."""

    def test_null_is_a_falsy_singleton(self):
        """Test that NULL is unique and falsy."""
        assert NullInstance() is NULL
        assert not NULL
        assert repr(NULL) == "NULL"


class TestComponentDefinition:
    """Test cases for ComponentDefinition."""

    def test_defaults(self):
        """Test that an empty scope means singleton."""
        definition = ComponentDefinition(component_type=dict)

        assert definition.scope == ""
        assert definition.is_singleton
        assert not definition.is_prototype
        assert definition.autowire_candidate
        assert not definition.has_constructor_args

    def test_prototype_scope(self):
        """Test the prototype scope flags."""
        definition = ComponentDefinition(component_type=dict, scope=Scope.PROTOTYPE.value)

        assert definition.is_prototype
        assert not definition.is_singleton

    def test_add_argument_chains(self):
        """Test that add_argument appends and returns the definition."""
        definition = ComponentDefinition(component_type=dict)

        result = definition.add_argument(literal("a")).add_argument(ref("b"), index=1)

        assert result is definition
        assert len(definition.constructor_args) == 2
        assert list(definition.indexed_args()) == [1]
        assert len(definition.generic_args()) == 1

    def test_min_argument_count(self):
        """Test the minimum parameter count derived from declared arguments."""
        definition = ComponentDefinition(component_type=dict)
        assert definition.min_argument_count() == 0

        definition.add_argument("x", index=3)
        assert definition.min_argument_count() == 4

        definition.add_argument("y").add_argument("z").add_argument("w").add_argument("v")
        assert definition.min_argument_count() == 5

    def test_add_property_replaces_same_name(self):
        """Test that setting a property twice keeps the last value."""
        definition = ComponentDefinition(component_type=dict)

        definition.add_property("url", "a").add_property("timeout", 3).add_property("url", "b")

        assert [prop.name for prop in definition.property_values] == ["timeout", "url"]
        assert definition.get_property("url").value == "b"
        assert definition.get_property("missing") is None

    def test_describe(self):
        """Test the human-readable description."""
        definition = ComponentDefinition(
            component_type=dict,
            factory_component_name="factory",
            factory_method_name="build",
            parent_name="base",
        )

        description = definition.describe()

        assert "type [dict]" in description
        assert "scope=singleton" in description
        assert "factory=factory.build" in description
        assert "parent=base" in description


class TestMergedDefinition:
    """Test cases for MergedDefinition."""

    def test_from_definition_copies_holders(self):
        """Test that merged definitions do not share argument or property holders."""
        definition = ComponentDefinition(component_type=dict, depends_on=["a"])
        definition.add_argument(literal("1")).add_property("name", literal("x"))

        merged = MergedDefinition.from_definition(definition)

        assert merged.component_type is dict
        assert merged.constructor_args[0] is not definition.constructor_args[0]
        assert merged.property_values[0] is not definition.property_values[0]
        merged.depends_on.append("b")
        assert definition.depends_on == ["a"]

    def test_stale_flag_and_cache(self):
        """Test the stale flag and the per-definition cache."""
        merged = MergedDefinition(component_type=dict)

        assert not merged.stale
        merged.stale = True
        assert merged.stale
        assert merged.cache.resolved_type is None

    def test_copy_type_caches_from_same_recipe(self):
        """Test that type facts survive a re-merge of the same recipe."""
        previous = MergedDefinition(component_type=dict)
        previous.cache.resolved_type = dict
        current = MergedDefinition(component_type=dict)

        current.copy_type_caches_from(previous)

        assert current.cache.resolved_type is dict

    def test_copy_type_caches_from_changed_recipe(self):
        """Test that type facts are dropped when the recipe changed."""
        previous = MergedDefinition(component_type=dict)
        previous.cache.resolved_type = dict
        current = MergedDefinition(component_type=list)

        current.copy_type_caches_from(previous)

        assert current.cache.resolved_type is None


class TestPropertyValue:
    """Test cases for PropertyValue conversion caching."""

    def test_mark_converted(self):
        """Test that a converted value is remembered."""
        prop = PropertyValue(name="port", value=literal("80"))
        assert not prop.is_converted

        prop.mark_converted(80)

        assert prop.is_converted
        assert prop.converted_value == 80

    def test_copy_value_drops_conversion_cache(self):
        """Test that copies start unconverted."""
        prop = PropertyValue(name="port", value=literal("80"))
        prop.mark_converted(80)

        copy = prop.copy_value()

        assert copy.value is prop.value
        assert not copy.is_converted


class TestDescriptorsAndCandidates:
    """Test cases for DependencyDescriptor and ExecutableCandidate."""

    def test_dependency_descriptor_describe(self):
        """Test the injection point description."""

        class Repository:
            pass

        named = DependencyDescriptor(dependency_type=Repository, name="repo", site="property")
        anonymous = DependencyDescriptor(dependency_type=Repository)

        assert named.describe() == "property 'repo' of type [TestDescriptorsAndCandidates.test_dependency_descriptor_describe.<locals>.Repository]"
        assert anonymous.describe().startswith("reference of type [")

    def test_candidate_invoke_static(self):
        """Test invoking a static candidate with keyword and positional-only parameters."""

        def build(a, /, b):
            return (a, b)

        candidate = ExecutableCandidate(
            name="build",
            parameters=(ParameterSpec(name="a", positional_only=True), ParameterSpec(name="b")),
            function=build,
        )

        assert candidate.parameter_count == 2
        assert candidate.invoke(None, [(candidate.parameters[0], 1), (candidate.parameters[1], 2)]) == (1, 2)

    def test_candidate_invoke_instance_method(self):
        """Test invoking an instance-method candidate on a target."""

        class Factory:
            def create(self, size):
                return [self] * size

        factory = Factory()
        candidate = ExecutableCandidate(
            name="create",
            parameters=(ParameterSpec(name="size", annotation=int),),
            static=False,
            function=Factory.create,
        )

        assert candidate.invoke(factory, [(candidate.parameters[0], 2)]) == [factory, factory]
        assert candidate.parameter_types == (int,)
        assert candidate.describe() == "create(size: int)"
