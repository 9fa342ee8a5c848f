"""Unit tests for ConstructorResolver, exercised through the container."""

import pytest

from keel_di.application import DIContainer
from keel_di.application.introspection import candidate
from keel_di.domain import (
    AmbiguousResolutionError,
    AutowireMode,
    ComponentCreationError,
    ComponentDefinition,
    NoViableConstructorError,
    UnsatisfiedDependencyError,
    literal,
    ref,
)


class Port:
    """Component with alternative constructors."""

    def __init__(self, number: int):
        self.number = number
        self.origin = "init"

    @candidate
    @classmethod
    def from_text(cls, text: str) -> "Port":
        port = cls(int(text))
        port.origin = "text"
        return port

    @candidate
    @classmethod
    def from_pair(cls, base: int, offset: int) -> "Port":
        port = cls(base + offset)
        port.origin = "pair"
        return port


class Loose:
    """Component whose constructors fit a literal equally well."""

    def __init__(self, value):
        self.value = value
        self.origin = "init"

    @candidate
    @classmethod
    def wrap(cls, value: object) -> "Loose":
        loose = cls(value)
        loose.origin = "wrap"
        return loose


class Repository:
    pass


class Service:
    def __init__(self, repository: Repository):
        self.repository = repository


class Endpoint:
    def __init__(self, host: str = "localhost", timeout: int = 5):
        self.host = host
        self.timeout = timeout


class Client:
    def __init__(self, url: str):
        self.url = url


class ClientFactory:
    @staticmethod
    def create(url: str) -> Client:
        return Client(url)

    @staticmethod
    def nothing() -> Client:
        return None

    def build(self, url: str) -> Client:
        return Client(url + "/built")


class Exploding:
    def __init__(self):
        raise RuntimeError("cannot start")


@pytest.fixture
def container():
    """Create an empty container."""
    return DIContainer()


class TestConstructorSelection:
    """Test cases for choosing among constructor candidates."""

    def test_natural_type_wins(self, container):
        """Test that an int-looking literal picks the int constructor."""
        container.register_definition("port", ComponentDefinition(component_type=Port).add_argument(literal("5")))

        port = container.get("port")

        assert port.number == 5
        assert port.origin == "init"

    def test_declared_type_selects_candidate(self, container):
        """Test that a declared argument type restricts the candidates."""
        container.register_definition(
            "port", ComponentDefinition(component_type=Port).add_argument(literal("5"), declared_type=str)
        )

        port = container.get("port")

        assert port.number == 5
        assert port.origin == "text"

    def test_greedy_candidate_with_more_arguments(self, container):
        """Test that two arguments select the two-parameter candidate."""
        container.register_definition(
            "port", ComponentDefinition(component_type=Port).add_argument(literal("8000")).add_argument(literal("80"))
        )

        port = container.get("port")

        assert port.number == 8080
        assert port.origin == "pair"

    def test_too_many_arguments(self, container):
        """Test that no candidate taking three arguments raises NoViableConstructorError."""
        definition = ComponentDefinition(component_type=Port)
        for text in ("x", "y", "z"):
            definition.add_argument(literal(text))
        container.register_definition("port", definition)

        with pytest.raises(NoViableConstructorError) as exc_info:
            container.get("port")

        assert exc_info.value.attempted == ["str", "str", "str"]
        assert exc_info.value.component_name == "port"

    def test_equal_weights_are_ambiguous(self, container):
        """Test that candidates scoring the same raise AmbiguousResolutionError."""
        container.register_definition("loose", ComponentDefinition(component_type=Loose).add_argument(literal("v")))

        with pytest.raises(AmbiguousResolutionError) as exc_info:
            container.get("loose")

        assert len(exc_info.value.candidates) == 2

    def test_lenient_resolution_takes_first(self, container):
        """Test that lenient resolution accepts the first of equal candidates."""
        container.register_definition(
            "loose",
            ComponentDefinition(component_type=Loose, lenient_resolution=True).add_argument(literal("v")),
        )

        loose = container.get("loose")

        assert loose.value == "v"
        assert loose.origin == "init"

    def test_chosen_candidate_is_cached(self, container):
        """Test that the chosen candidate is remembered on the merged definition."""
        container.register_definition(
            "port", ComponentDefinition(component_type=Port, scope="prototype").add_argument(literal("5"))
        )

        first = container.get("port")
        second = container.get("port")

        assert first is not second
        assert second.number == 5
        assert container.merger.get_merged_definition("port").cache.resolved_candidate.name == "__init__"


class TestArguments:
    """Test cases for matching declared arguments to parameters."""

    def test_indexed_reference(self, container):
        """Test that an indexed reference fills its position."""
        container.register_definition("repo", ComponentDefinition(component_type=Repository))
        container.register_definition(
            "svc", ComponentDefinition(component_type=Service).add_argument(ref("repo"), index=0)
        )

        assert container.get("svc").repository is container.get("repo")

    def test_named_argument_and_defaults(self, container):
        """Test that a named argument skips earlier defaulted parameters."""
        container.register_definition(
            "endpoint", ComponentDefinition(component_type=Endpoint).add_argument(literal("9"), name="timeout")
        )

        endpoint = container.get("endpoint")

        assert endpoint.host == "localhost"
        assert endpoint.timeout == 9

    def test_single_constructor_is_autowired(self, container):
        """Test that the only constructor gets its collaborators by type."""
        container.register_definition("repo", ComponentDefinition(component_type=Repository))
        container.register_definition("svc", ComponentDefinition(component_type=Service))

        service = container.get("svc")

        assert service.repository is container.get("repo")
        assert container.registry.dependents_of("repo") == ["svc"]

    def test_constructor_autowire_mode(self, container):
        """Test that constructor autowiring resolves collaborators by type."""
        container.register_definition("repo", ComponentDefinition(component_type=Repository))
        container.register_definition(
            "svc", ComponentDefinition(component_type=Service, autowire_mode=AutowireMode.CONSTRUCTOR)
        )

        assert isinstance(container.get("svc").repository, Repository)

    def test_missing_collaborator_surfaces(self, container):
        """Test that the only candidate's failure is reported as is."""
        container.register_definition("svc", ComponentDefinition(component_type=Service))

        with pytest.raises(UnsatisfiedDependencyError) as exc_info:
            container.get("svc")

        assert exc_info.value.component_chain[0] == "svc"
        assert "Repository" in str(exc_info.value)

    def test_explicit_arguments_bypass_cache(self, container):
        """Test that explicit arguments build a new instance every time."""
        container.register_definition("port", ComponentDefinition(component_type=Port).add_argument(literal("5")))

        shared = container.get("port")
        explicit = container.get("port", None, 7)

        assert explicit.number == 7
        assert explicit is not shared
        assert container.get("port") is shared

    def test_constructor_failure_wrapped(self, container):
        """Test that exceptions from constructors become ComponentCreationError."""
        container.register_definition("boom", ComponentDefinition(component_type=Exploding))

        with pytest.raises(ComponentCreationError) as exc_info:
            container.get("boom")

        assert "cannot start" in str(exc_info.value)


class TestFactoryMethods:
    """Test cases for instantiation through factory methods."""

    def test_static_factory_method(self, container):
        """Test calling a static factory method of the component type."""
        container.register_definition(
            "client",
            ComponentDefinition(component_type=ClientFactory, factory_method_name="create").add_argument(
                literal("http://api")
            ),
        )

        client = container.get("client")

        assert isinstance(client, Client)
        assert client.url == "http://api"
        assert container.get_type("client") is Client

    def test_instance_factory_method(self, container):
        """Test calling a method of a factory component."""
        container.register_definition("factory", ComponentDefinition(component_type=ClientFactory))
        container.register_definition(
            "client",
            ComponentDefinition(factory_component_name="factory", factory_method_name="build").add_argument(
                literal("http://api")
            ),
        )

        assert container.get("client").url == "http://api/built"
        assert container.registry.dependents_of("factory") == ["client"]

    def test_factory_method_returning_none(self, container):
        """Test that a None product is served as None."""
        container.register_definition(
            "client", ComponentDefinition(component_type=ClientFactory, factory_method_name="nothing")
        )

        assert container.get("client") is None
        assert container.get("client") is None

    def test_unknown_factory_method(self, container):
        """Test that a missing factory method raises NoViableConstructorError."""
        container.register_definition(
            "client", ComponentDefinition(component_type=ClientFactory, factory_method_name="missing")
        )

        with pytest.raises(NoViableConstructorError) as exc_info:
            container.get("client")

        assert "missing" in str(exc_info.value)
