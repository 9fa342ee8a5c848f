"""Application layer - Three-tier singleton cache with early references."""

import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Set

from keel_di.domain import (
    CircularCreationError,
    CreationNotAllowedError,
    DefinitionOverrideError,
    DisposableComponent,
    InstanceRecord,
    RecordState,
)

logger = logging.getLogger(__name__)


class SingletonRegistry:
    """Holds singleton instances and resolves circular references between them.

    Every singleton name has at most one `InstanceRecord`, which moves forward
    only: FACTORY_PENDING (a callback able to expose the raw instance early),
    EARLY_REFERENCE (the memoized result of that callback) and FINISHED (the
    fully initialized instance). A separate in-creation map records which
    thread is building which name.

    One re-entrant mutex guards all bookkeeping. Construction recipes run
    outside of it so unrelated names build in parallel; a thread asking for a
    name another thread is building waits on the condition until that
    construction ends.

    Attributes:
        _condition: Condition over the registry mutex.
        _records: Instance records by name.
        _order: Finished names in registration order.
        _in_creation: Names being built, mapped to the building thread.
        _waiting: Threads waiting for a name, mapped to that name.
        _disposables: Disposal adapters by name, in registration order.
        _dependents: For each name, the names that depend on it.
        _dependencies: For each name, the names it depends on.
        _contained: For each outer name, its inner (nested) components.
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._mutex = threading.RLock()
        self._condition = threading.Condition(self._mutex)
        self._records: Dict[str, InstanceRecord] = {}
        self._order: Dict[str, None] = {}
        self._in_creation: Dict[str, int] = {}
        self._waiting: Dict[int, str] = {}
        self._in_destruction = False

        self._disposables_lock = threading.Lock()
        self._disposables: Dict[str, DisposableComponent] = {}

        self._edges_lock = threading.RLock()
        self._dependents: Dict[str, Dict[str, None]] = {}
        self._dependencies: Dict[str, Dict[str, None]] = {}
        self._contained: Dict[str, Dict[str, None]] = {}

    # ------------------------------------------------------------------
    # Lookup and creation
    # ------------------------------------------------------------------

    def get_singleton(self, name: str, allow_early: bool = True) -> Optional[Any]:
        """Return the finished instance, or an early reference during creation.

        An early reference is only handed to the thread that is building the
        name: that is the re-entrant case of a circular dependency. The early
        factory is invoked at most once; its result is memoized so that every
        dependent observes the same object.

        Args:
            name: The singleton name.
            allow_early: Whether a pending early factory may be invoked.

        Returns:
            The instance, an early reference, or None.
        """
        with self._mutex:
            record = self._records.get(name)
            if record is not None and record.state is RecordState.FINISHED:
                return record.instance
            if self._in_creation.get(name) != threading.get_ident():
                return None
            return self._early_reference(record, allow_early)

    def get_or_create_singleton(self, name: str, recipe: Callable[[], Any]) -> Any:
        """Return the finished instance, building it with `recipe` if needed.

        Args:
            name: The singleton name.
            recipe: Builds the fully initialized instance.

        Returns:
            The singleton instance.

        Raises:
            CircularCreationError: If the current thread is already building
                the name and no early reference exists, or if waiting would
                deadlock two threads building each other's dependencies.
            CreationNotAllowedError: If singletons are being destroyed.

        Example:
            >>> registry = SingletonRegistry()
            >>> first = registry.get_or_create_singleton("config", lambda: Config())
            >>> second = registry.get_or_create_singleton("config", lambda: Config())
            >>> assert first is second
        """
        me = threading.get_ident()
        with self._condition:
            while True:
                record = self._records.get(name)
                if record is not None and record.state is RecordState.FINISHED:
                    return record.instance
                owner = self._in_creation.get(name)
                if owner is None:
                    break
                if owner == me:
                    raise CircularCreationError(name)
                if self._closes_wait_cycle(owner, me):
                    early = self._early_reference(record, True)
                    if early is not None:
                        logger.debug("Handing early reference of '%s' across threads to break a wait cycle", name)
                        return early
                    raise CircularCreationError(
                        name,
                        detail="Two threads are creating components that depend on each other and no early reference is available",
                    )
                self._waiting[me] = name
                try:
                    self._condition.wait()
                finally:
                    self._waiting.pop(me, None)

            if self._in_destruction:
                raise CreationNotAllowedError(
                    "Singleton creation not allowed while singletons of this container are in destruction "
                    "(do not request a component from a container in a destroy method implementation)",
                    name,
                )
            self._in_creation[name] = me

        logger.debug("Creating shared instance of singleton '%s'", name)
        try:
            instance = recipe()
        except BaseException:
            with self._condition:
                self._records.pop(name, None)
                self._order.pop(name, None)
                self._in_creation.pop(name, None)
                self._condition.notify_all()
            raise

        with self._condition:
            self._add_singleton(name, instance)
            self._in_creation.pop(name, None)
            self._condition.notify_all()
        return instance

    def add_early_factory(self, name: str, factory: Callable[[], Any]) -> None:
        """Register the callback exposing an early reference for a name in creation."""
        with self._mutex:
            record = self._records.get(name)
            if record is None or record.state is not RecordState.FINISHED:
                self._records[name] = InstanceRecord(
                    name=name,
                    state=RecordState.FACTORY_PENDING,
                    early_factory=factory,
                )

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a ready-made singleton instance.

        Raises:
            DefinitionOverrideError: If an instance is already bound to the name.
        """
        with self._mutex:
            record = self._records.get(name)
            if record is not None and record.state is RecordState.FINISHED:
                raise DefinitionOverrideError(
                    f"Could not register object [{instance!r}] under name '{name}': "
                    f"there is already object [{record.instance!r}] bound"
                )
            self._add_singleton(name, instance)

    def remove_singleton(self, name: str) -> None:
        """Drop every cache tier of a name."""
        with self._mutex:
            self._records.pop(name, None)
            self._order.pop(name, None)

    def contains_singleton(self, name: str) -> bool:
        with self._mutex:
            record = self._records.get(name)
            return record is not None and record.state is RecordState.FINISHED

    def singleton_names(self) -> List[str]:
        with self._mutex:
            return list(self._order)

    def singleton_count(self) -> int:
        with self._mutex:
            return len(self._order)

    def get_record(self, name: str) -> Optional[InstanceRecord]:
        """Return a copy of the record for a name, for inspection."""
        with self._mutex:
            record = self._records.get(name)
            return record.model_copy() if record is not None else None

    def is_currently_in_creation(self, name: str) -> bool:
        """Whether any thread is building the name."""
        with self._mutex:
            return name in self._in_creation

    def _add_singleton(self, name: str, instance: Any) -> None:
        self._records[name] = InstanceRecord(name=name, state=RecordState.FINISHED, instance=instance)
        self._order[name] = None

    def _early_reference(self, record: Optional[InstanceRecord], allow_early: bool) -> Optional[Any]:
        if record is None:
            return None
        if record.state is RecordState.EARLY_REFERENCE:
            return record.instance
        if record.state is RecordState.FACTORY_PENDING and allow_early and record.early_factory is not None:
            factory = record.early_factory
            record.instance = factory()
            record.early_factory = None
            record.state = RecordState.EARLY_REFERENCE
            logger.debug("Exposed early reference of singleton '%s'", record.name)
            return record.instance
        return None

    def _closes_wait_cycle(self, owner: int, me: int) -> bool:
        seen: Set[int] = set()
        thread: Optional[int] = owner
        while thread is not None and thread not in seen:
            seen.add(thread)
            waited = self._waiting.get(thread)
            if waited is None:
                return False
            thread = self._in_creation.get(waited)
            if thread == me:
                return True
        return False

    # ------------------------------------------------------------------
    # Dependency edges
    # ------------------------------------------------------------------

    def register_dependent(self, name: str, dependent: str) -> None:
        """Record that `dependent` holds a reference to `name`."""
        with self._edges_lock:
            dependents = self._dependents.setdefault(name, {})
            if dependent in dependents:
                return
            dependents[dependent] = None
            self._dependencies.setdefault(dependent, {})[name] = None

    def register_contained(self, inner: str, outer: str) -> None:
        """Record that `inner` was built for and is destroyed with `outer`."""
        with self._edges_lock:
            contained = self._contained.setdefault(outer, {})
            if inner in contained:
                return
            contained[inner] = None
        self.register_dependent(inner, outer)

    def is_dependent(self, name: str, dependent: str, _seen: Optional[Set[str]] = None) -> bool:
        """Whether `dependent` depends on `name`, directly or transitively."""
        with self._edges_lock:
            if _seen is not None and name in _seen:
                return False
            direct = self._dependents.get(name)
            if not direct:
                return False
            if dependent in direct:
                return True
            seen = set() if _seen is None else _seen
            seen.add(name)
            return any(self.is_dependent(transitive, dependent, seen) for transitive in list(direct))

    def dependents_of(self, name: str) -> List[str]:
        with self._edges_lock:
            return list(self._dependents.get(name, {}))

    def dependencies_of(self, name: str) -> List[str]:
        with self._edges_lock:
            return list(self._dependencies.get(name, {}))

    def has_dependents(self, name: str) -> bool:
        with self._edges_lock:
            return bool(self._dependents.get(name))

    # ------------------------------------------------------------------
    # Disposal
    # ------------------------------------------------------------------

    def register_disposable(self, name: str, adapter: DisposableComponent) -> None:
        """Register the adapter that destroys a singleton on shutdown."""
        with self._disposables_lock:
            self._disposables[name] = adapter

    def has_disposable(self, name: str) -> bool:
        with self._disposables_lock:
            return name in self._disposables

    def destroy_singletons(self) -> None:
        """Destroy all singletons, most recently registered disposables first."""
        logger.debug("Destroying singletons")
        with self._mutex:
            self._in_destruction = True

        with self._disposables_lock:
            names = list(self._disposables)
        for name in reversed(names):
            self.destroy_singleton(name)

        with self._edges_lock:
            self._contained.clear()
            self._dependents.clear()
            self._dependencies.clear()

        with self._mutex:
            self._records.clear()
            self._order.clear()
            self._in_destruction = False

    def destroy_singleton(self, name: str) -> None:
        """Destroy one singleton after everything that depends on it."""
        self.remove_singleton(name)
        with self._disposables_lock:
            adapter = self._disposables.pop(name, None)
        self._destroy(name, adapter)

    def _destroy(self, name: str, adapter: Optional[DisposableComponent]) -> None:
        with self._edges_lock:
            dependents = self._dependents.pop(name, None)
        if dependents:
            logger.debug("Destroying components depending on '%s': %s", name, list(dependents))
            for dependent in list(dependents):
                self.destroy_singleton(dependent)

        if adapter is not None:
            try:
                adapter.destroy()
            except Exception:
                logger.warning("Destruction of component '%s' threw an exception", name, exc_info=True)

        with self._edges_lock:
            contained = self._contained.pop(name, None)
        if contained:
            for inner in list(contained):
                self.destroy_singleton(inner)

        with self._edges_lock:
            for other in list(self._dependents):
                remaining = self._dependents[other]
                remaining.pop(name, None)
                if not remaining:
                    del self._dependents[other]
            self._dependencies.pop(name, None)
