"""Application layer - Selection of the constructor or factory method to call.

Candidates are scored by how well the declared arguments fit their
parameters. The lowest score wins:

- A literal scores 0 when the parameter type is the literal's natural type
  (bool, int, float, else str), 1 when a `str` or untyped parameter takes the
  text as-is, and 2 for any other conversion.
- An object scores the distance from its class to the parameter type along
  its MRO (to `object` for untyped parameters), plus 1024 when it had to be
  converted.
"""

import inspect
import logging
import math
import typing
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

from keel_di.application.type_converter import is_unconstrained, natural_type
from keel_di.domain import (
    NULL,
    AmbiguousResolutionError,
    AutowireMarker,
    AutowireMode,
    ComponentCreationError,
    ConstructorArgument,
    DependencyDescriptor,
    DIException,
    ExecutableCandidate,
    InvalidDefinitionError,
    LiteralValue,
    MergedDefinition,
    NoViableConstructorError,
    ParameterSpec,
    TypeConversionError,
    UnsatisfiedDependencyError,
    ValueDescriptor,
)

if TYPE_CHECKING:
    from keel_di.application.container import DIContainer

logger = logging.getLogger(__name__)

CONVERSION_PENALTY = 1024


class _ResolvedArgument:
    """A declared argument with its value resolved once per creation."""

    __slots__ = ("argument", "value", "literal_text", "autowire")

    def __init__(self, argument: ConstructorArgument, value: Any, literal_text: Optional[str], autowire: bool) -> None:
        self.argument = argument
        self.value = value
        self.literal_text = literal_text
        self.autowire = autowire


class _PreparedArgument:
    """How to recompute one argument for a cached candidate."""

    __slots__ = ("source", "raw", "required")

    DEFAULT = "default"
    VALUE = "value"
    AUTOWIRED = "autowired"

    def __init__(self, source: str, raw: Any = None, required: bool = True) -> None:
        self.source = source
        self.raw = raw
        self.required = required


class _ArgumentsHolder:
    """Arguments built for one candidate, with what is needed to score and cache them."""

    def __init__(self) -> None:
        self.arguments: List[Tuple[ParameterSpec, Any]] = []
        self.weights: List[int] = []
        self.prepared: List[_PreparedArgument] = []
        self.autowired_names: List[str] = []
        self.resolve_necessary = False

    @property
    def weight(self) -> int:
        return sum(self.weights)


class ConstructorResolver:
    """Creates raw instances: instance supplier, then factory method, then constructor.

    Attributes:
        _container: The owning container.
    """

    def __init__(self, container: "DIContainer") -> None:
        self._container = container

    def create_raw_instance(
        self, name: str, merged: MergedDefinition, explicit_args: Optional[Sequence[Any]] = None
    ) -> Any:
        """Instantiate a component without wiring or initializing it.

        Args:
            name: The component name.
            merged: The merged definition.
            explicit_args: Arguments passed by the caller, bypassing declared ones.

        Returns:
            The new instance, or `NULL` when a supplier or factory method returned None.

        Raises:
            NoViableConstructorError: If no candidate can be satisfied.
            AmbiguousResolutionError: If several candidates fit equally well.
            ComponentCreationError: If the constructor or factory raises.
        """
        if merged.instance_supplier is not None and explicit_args is None:
            return self._from_supplier(name, merged)
        if merged.factory_method_name:
            return self.instantiate_using_factory_method(name, merged, explicit_args)

        component_type = self._container.load_component_type(name, merged)
        if component_type is None:
            raise InvalidDefinitionError("Definition declares neither a component type nor a factory method", name)
        candidates = self._container.introspector.describe_constructors(component_type)
        return self._instantiate(name, merged, candidates, None, explicit_args, "constructor", component_type)

    def instantiate_using_factory_method(
        self, name: str, merged: MergedDefinition, explicit_args: Optional[Sequence[Any]] = None
    ) -> Any:
        """Instantiate through a factory method of a factory component or type."""
        factory_name = merged.factory_component_name
        method_name = merged.factory_method_name
        if factory_name:
            if factory_name == name:
                raise InvalidDefinitionError("factory_component_name points back to the same component definition", name)
            factory = self._container.get(factory_name)
            if factory is None:
                raise InvalidDefinitionError(f"Factory component '{factory_name}' resolved to None", name)
            self._container.register_dependent_component(factory_name, name)
            factory_type = type(factory)
            static = False
        else:
            factory_type = self._container.load_component_type(name, merged)
            if factory_type is None:
                raise InvalidDefinitionError(
                    "Definition declares neither a component type nor a factory component reference", name
                )
            factory = None
            static = True

        candidates = self._container.introspector.describe_factory_methods(factory_type, method_name, static)
        if not candidates:
            where = f"factory component '{factory_name}'" if factory_name else f"factory type [{factory_type.__qualname__}]"
            kind = "a static or class method" if static else "an instance method"
            raise NoViableConstructorError(
                f"No matching factory method found on {where}: factory method '{method_name}'. "
                f"Check that a method with the specified name exists and that it is {kind}.",
                component_name=name,
            )
        return self._instantiate(name, merged, candidates, factory, explicit_args, "factory method", factory_type)

    def _from_supplier(self, name: str, merged: MergedDefinition) -> Any:
        try:
            instance = merged.instance_supplier(self._container)
        except DIException as e:
            raise e.add_context(name)
        except Exception as e:
            raise ComponentCreationError(f"Instance supplier threw exception: {e}", name) from e
        return NULL if instance is None else instance

    def _instantiate(
        self,
        name: str,
        merged: MergedDefinition,
        candidates: List[ExecutableCandidate],
        target: Any,
        explicit_args: Optional[Sequence[Any]],
        kind: str,
        owner_type: type,
    ) -> Any:
        if explicit_args is None:
            shortcut = self._cached_arguments(name, merged)
            if shortcut is not None:
                return self._invoke(name, shortcut[0], target, shortcut[1])

        if explicit_args is not None:
            explicit = list(explicit_args)
            declared: Optional[Tuple[Dict[int, _ResolvedArgument], List[_ResolvedArgument]]] = None
            min_args = len(explicit)
        else:
            explicit = None
            declared = self._resolve_declared_arguments(name, merged)
            min_args = merged.min_argument_count()

        viable = [candidate for candidate in candidates if candidate.parameter_count >= min_args]
        viable.sort(key=lambda candidate: (not candidate.public, -candidate.parameter_count))
        relaxed = merged.autowire_mode is AutowireMode.CONSTRUCTOR or len(candidates) == 1

        chosen: Optional[ExecutableCandidate] = None
        chosen_holder: Optional[_ArgumentsHolder] = None
        min_weight = math.inf
        ties: List[ExecutableCandidate] = []
        cause: Optional[DIException] = None
        last_failed = False

        for candidate in viable:
            if chosen is not None and chosen.parameter_count > candidate.parameter_count:
                # Greedy: a candidate taking more arguments already fits
                break
            try:
                if explicit is not None:
                    holder = self._explicit_arguments(name, candidate, explicit)
                else:
                    holder = self._build_arguments(name, merged, candidate, declared, relaxed)
            except UnsatisfiedDependencyError as e:
                logger.debug("Ignoring %s %s of component '%s': %s", kind, candidate.describe(), name, e)
                cause = e
                last_failed = True
                continue
            last_failed = False

            weight = holder.weight
            if weight < min_weight:
                chosen, chosen_holder, min_weight = candidate, holder, weight
                ties = []
            elif chosen is not None and weight == min_weight and candidate.parameter_types != chosen.parameter_types:
                if not ties:
                    ties.append(chosen)
                ties.append(candidate)

        if chosen is None or chosen_holder is None:
            if cause is not None and last_failed and len(viable) == 1:
                raise cause.add_context(name)
            attempted = self._attempted_types(merged, explicit)
            error = NoViableConstructorError(
                f"Could not resolve matching {kind} on [{owner_type.__qualname__}]: "
                f"{len(candidates)} candidate(s), {len(viable)} taking at least {min_args} argument(s)",
                attempted,
                name,
            )
            raise error from cause

        if ties and not merged.lenient_resolution:
            raise AmbiguousResolutionError(
                f"Ambiguous {kind} matches found on [{owner_type.__qualname__}] "
                "(hint: declare argument types or names, or enable lenient resolution)",
                [candidate.describe() for candidate in ties],
                name,
            )

        for autowired_name in chosen_holder.autowired_names:
            self._container.register_dependent_component(autowired_name, name)
        if explicit is None:
            self._store_cache(merged, chosen, chosen_holder)
        logger.debug("Component '%s' uses %s %s", name, kind, chosen.describe())
        return self._invoke(name, chosen, target, chosen_holder.arguments)

    def _invoke(
        self, name: str, candidate: ExecutableCandidate, target: Any, arguments: List[Tuple[ParameterSpec, Any]]
    ) -> Any:
        try:
            instance = candidate.invoke(target, arguments)
        except DIException as e:
            raise e.add_context(name)
        except Exception as e:
            raise ComponentCreationError(f"Instantiation via {candidate.describe()} failed: {e}", name) from e
        return NULL if instance is None else instance

    # ------------------------------------------------------------------
    # Argument resolution
    # ------------------------------------------------------------------

    def _resolve_declared_arguments(
        self, name: str, merged: MergedDefinition
    ) -> Tuple[Dict[int, _ResolvedArgument], List[_ResolvedArgument]]:
        if not merged.has_constructor_args:
            return {}, []
        indexed: Dict[int, _ResolvedArgument] = {}
        generic: List[_ResolvedArgument] = []
        for argument in merged.constructor_args:
            if argument.is_indexed:
                label = f"constructor argument with index {argument.index}"
            else:
                label = f"constructor argument '{argument.name}'" if argument.name else "generic constructor argument"
            resolved = self._resolve_declared(name, merged, argument, label)
            if argument.is_indexed:
                indexed[argument.index] = resolved
            else:
                generic.append(resolved)
        return indexed, generic

    def _resolve_declared(
        self, name: str, merged: MergedDefinition, argument: ConstructorArgument, label: str
    ) -> _ResolvedArgument:
        raw = argument.value
        if isinstance(raw, AutowireMarker):
            return _ResolvedArgument(argument, raw, None, True)
        value = self._container.value_resolver.resolve(name, merged, label, raw)
        literal_text = None
        if isinstance(raw, LiteralValue) and raw.target_type is None and isinstance(value, str) and not raw.dynamic:
            literal_text = value
        return _ResolvedArgument(argument, value, literal_text, False)

    def _build_arguments(
        self,
        name: str,
        merged: MergedDefinition,
        candidate: ExecutableCandidate,
        declared: Tuple[Dict[int, _ResolvedArgument], List[_ResolvedArgument]],
        relaxed: bool,
    ) -> _ArgumentsHolder:
        indexed, generic = declared
        used: List[_ResolvedArgument] = []
        holder = _ArgumentsHolder()
        autowiring = merged.autowire_mode is AutowireMode.CONSTRUCTOR

        for position, param in enumerate(candidate.parameters):
            label = f"constructor parameter '{param.name}' at index {position}"
            param_type = self._container.converter.resolve_type(param.annotation) if param.annotation else None
            match = indexed.get(position)
            if match is not None and not self._fits(match.argument, param, param_type):
                match = None
            if match is None:
                match = self._match_generic(generic, used, param, param_type)
            if match is not None:
                used.append(match)
                if match.autowire:
                    self._autowire(name, holder, param, param_type, label, required=match.value.required)
                    continue
                self._add_declared(name, holder, param, param_type, match, label)
                continue

            if param.has_default and not autowiring:
                self._add_default(holder, param)
            elif param.has_default:
                self._autowire(name, holder, param, param_type, label, required=False)
            elif relaxed:
                self._autowire(name, holder, param, param_type, label, required=True)
            else:
                raise UnsatisfiedDependencyError(
                    "Ambiguous argument values for parameter; did you specify the correct "
                    "component references as arguments?",
                    label,
                    name,
                )

        unused = [resolved for resolved in list(indexed.values()) + generic if resolved not in used]
        if unused:
            raise UnsatisfiedDependencyError(
                f"{len(unused)} declared argument(s) do not match any parameter of {candidate.describe()}",
                None,
                name,
            )
        return holder

    def _explicit_arguments(self, name: str, candidate: ExecutableCandidate, explicit: List[Any]) -> _ArgumentsHolder:
        holder = _ArgumentsHolder()
        for position, param in enumerate(candidate.parameters):
            label = f"constructor parameter '{param.name}' at index {position}"
            if position >= len(explicit):
                if not param.has_default:
                    raise UnsatisfiedDependencyError("No explicit argument given", label, name)
                self._add_default(holder, param)
                continue
            param_type = self._container.converter.resolve_type(param.annotation) if param.annotation else None
            value = explicit[position]
            converted = self._convert(name, value, param_type, label)
            holder.arguments.append((param, converted))
            holder.weights.append(self._weight(param_type, value, converted, None))
        return holder

    def _add_declared(
        self,
        name: str,
        holder: _ArgumentsHolder,
        param: ParameterSpec,
        param_type: Optional[Any],
        match: _ResolvedArgument,
        label: str,
    ) -> None:
        converted = self._convert(name, match.value, param_type, label)
        holder.arguments.append((param, converted))
        holder.weights.append(self._weight(param_type, match.value, converted, match.literal_text))
        raw = match.argument.value
        holder.prepared.append(_PreparedArgument(_PreparedArgument.VALUE, raw))
        if isinstance(raw, ValueDescriptor) and not (isinstance(raw, LiteralValue) and not raw.dynamic):
            holder.resolve_necessary = True

    def _add_default(self, holder: _ArgumentsHolder, param: ParameterSpec) -> None:
        holder.arguments.append((param, param.default))
        holder.weights.append(0)
        holder.prepared.append(_PreparedArgument(_PreparedArgument.DEFAULT, param.default))

    def _autowire(
        self,
        name: str,
        holder: _ArgumentsHolder,
        param: ParameterSpec,
        param_type: Optional[Any],
        label: str,
        required: bool,
    ) -> None:
        if is_unconstrained(param_type):
            if param.has_default:
                self._add_default(holder, param)
                return
            raise UnsatisfiedDependencyError("Cannot autowire a parameter without a type annotation", label, name)

        value = self._resolve_by_type(name, param, param_type, label, required, holder.autowired_names)
        if value is None and param.has_default:
            value = param.default
        holder.arguments.append((param, value))
        holder.weights.append(self._weight(param_type, value, value, None))
        holder.prepared.append(_PreparedArgument(_PreparedArgument.AUTOWIRED, param.default, required))
        holder.resolve_necessary = True

    def _resolve_by_type(
        self,
        name: str,
        param: ParameterSpec,
        param_type: Any,
        label: str,
        required: bool,
        autowired_names: List[str],
    ) -> Any:
        descriptor = DependencyDescriptor(
            dependency_type=param_type,
            name=param.name,
            required=required,
            declaring_component=name,
            site="parameter",
        )
        try:
            return self._container.resolve_dependency(descriptor, name, autowired_names)
        except UnsatisfiedDependencyError as e:
            if e.injection_point is None:
                raise UnsatisfiedDependencyError(e.detail, label, name) from e
            raise

    def _convert(self, name: str, value: Any, param_type: Optional[Any], label: str) -> Any:
        try:
            return self._container.converter.convert(value, param_type, label)
        except TypeConversionError as e:
            raise UnsatisfiedDependencyError(e.detail, label, name) from e

    # ------------------------------------------------------------------
    # Matching and scoring
    # ------------------------------------------------------------------

    def _fits(self, argument: ConstructorArgument, param: ParameterSpec, param_type: Optional[Any]) -> bool:
        if argument.name is not None and argument.name != param.name:
            return False
        if argument.declared_type is not None:
            return self._container.converter.resolve_type(argument.declared_type) == param_type
        return True

    def _match_generic(
        self,
        generic: List[_ResolvedArgument],
        used: List[_ResolvedArgument],
        param: ParameterSpec,
        param_type: Optional[Any],
    ) -> Optional[_ResolvedArgument]:
        available = [resolved for resolved in generic if resolved not in used]
        for resolved in available:
            if resolved.argument.name == param.name and self._fits(resolved.argument, param, param_type):
                return resolved
        for resolved in available:
            argument = resolved.argument
            if argument.name is None and argument.declared_type is not None and self._fits(argument, param, param_type):
                return resolved
        for resolved in available:
            if resolved.argument.name is None and resolved.argument.declared_type is None:
                return resolved
        return None

    @classmethod
    def _weight(cls, param_type: Optional[Any], raw: Any, converted: Any, literal_text: Optional[str]) -> int:
        param_type = cls._unwrap_optional(param_type)
        if literal_text is not None:
            if not is_unconstrained(param_type) and param_type is natural_type(literal_text):
                return 0
            if param_type is str or is_unconstrained(param_type):
                return 1
            return 2

        if raw is None or raw is NULL:
            return 0
        if is_unconstrained(param_type):
            return len(type(raw).__mro__) - 1
        if inspect.isclass(param_type) and isinstance(raw, param_type):
            return cls._distance(type(raw), param_type)
        if inspect.isclass(param_type) and isinstance(converted, param_type):
            return CONVERSION_PENALTY + cls._distance(type(converted), param_type)
        return CONVERSION_PENALTY

    @staticmethod
    def _distance(value_type: type, param_type: type) -> int:
        mro = value_type.__mro__
        if param_type in mro:
            return mro.index(param_type)
        # Virtual subclass through an ABC registration
        return len(mro) - 1

    @staticmethod
    def _unwrap_optional(param_type: Optional[Any]) -> Optional[Any]:
        if typing.get_origin(param_type) is typing.Union:
            arguments = [arg for arg in typing.get_args(param_type) if arg is not type(None)]
            if len(arguments) == 1:
                return arguments[0]
        return param_type

    @staticmethod
    def _attempted_types(merged: MergedDefinition, explicit: Optional[List[Any]]) -> List[str]:
        if explicit is not None:
            return [type(value).__qualname__ for value in explicit]
        attempted = []
        for argument in merged.constructor_args:
            value = argument.value
            if isinstance(value, LiteralValue):
                attempted.append("str")
            elif isinstance(value, ValueDescriptor):
                attempted.append(str(value.kind))
            else:
                attempted.append(type(value).__qualname__)
        return attempted

    # ------------------------------------------------------------------
    # Caching
    # ------------------------------------------------------------------

    @staticmethod
    def _store_cache(merged: MergedDefinition, chosen: ExecutableCandidate, holder: _ArgumentsHolder) -> None:
        with merged.lock:
            cache = merged.cache
            cache.resolved_candidate = chosen
            cache.constructor_args_resolved = True
            if holder.resolve_necessary:
                cache.prepared_arguments = holder.prepared
                cache.resolved_arguments = None
            else:
                cache.resolved_arguments = list(holder.arguments)
                cache.prepared_arguments = None

    def _cached_arguments(
        self, name: str, merged: MergedDefinition
    ) -> Optional[Tuple[ExecutableCandidate, List[Tuple[ParameterSpec, Any]]]]:
        with merged.lock:
            cache = merged.cache
            if not cache.constructor_args_resolved or cache.resolved_candidate is None:
                return None
            chosen = cache.resolved_candidate
            resolved = cache.resolved_arguments
            prepared = cache.prepared_arguments
        if resolved is not None:
            return chosen, list(resolved)
        return chosen, self._resolve_prepared(name, merged, chosen, prepared or [])

    def _resolve_prepared(
        self,
        name: str,
        merged: MergedDefinition,
        chosen: ExecutableCandidate,
        prepared: List[_PreparedArgument],
    ) -> List[Tuple[ParameterSpec, Any]]:
        arguments: List[Tuple[ParameterSpec, Any]] = []
        autowired_names: List[str] = []
        for position, (param, entry) in enumerate(zip(chosen.parameters, prepared)):
            label = f"constructor parameter '{param.name}' at index {position}"
            param_type = self._container.converter.resolve_type(param.annotation) if param.annotation else None
            if entry.source == _PreparedArgument.DEFAULT:
                arguments.append((param, entry.raw))
            elif entry.source == _PreparedArgument.AUTOWIRED:
                value = self._resolve_by_type(name, param, param_type, label, entry.required, autowired_names)
                arguments.append((param, param.default if value is None and param.has_default else value))
            else:
                value = self._container.value_resolver.resolve(name, merged, label, entry.raw, param_type, param.name)
                arguments.append((param, self._convert(name, value, param_type, label)))
        for autowired_name in autowired_names:
            self._container.register_dependent_component(autowired_name, name)
        return arguments
