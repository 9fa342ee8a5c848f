import logging
import threading
from typing import Any, Callable, Dict, List, Optional, Tuple

from keel_di.domain import IScope

logger = logging.getLogger(__name__)


class ThreadScope(IScope):
    """Custom scope keeping one instance per name and thread.

    Register it under a scope name and declare that name on definitions:

    Example:
        >>> container.register_scope("thread", ThreadScope())
        >>> container.register_definition("session", ComponentDefinition(component_type=Session, scope="thread"))

    Attributes:
        _local: Thread-local object and callback stores.
    """

    def __init__(self) -> None:
        self._local = threading.local()

    def _objects(self) -> Dict[str, Any]:
        if not hasattr(self._local, "objects"):
            self._local.objects = {}
        return self._local.objects

    def _callbacks(self) -> Dict[str, Callable[[], None]]:
        if not hasattr(self._local, "callbacks"):
            self._local.callbacks = {}
        return self._local.callbacks

    def get(self, name: str, object_factory: Callable[[], Any]) -> Any:
        objects = self._objects()
        if name not in objects:
            objects[name] = object_factory()
        return objects[name]

    def remove(self, name: str) -> Optional[Any]:
        self._callbacks().pop(name, None)
        return self._objects().pop(name, None)

    def register_destruction_callback(self, name: str, callback: Callable[[], None]) -> None:
        self._callbacks()[name] = callback

    def clear(self) -> None:
        """Destroy the calling thread's objects, most recently created first."""
        callbacks: List[Tuple[str, Callable[[], None]]] = list(self._callbacks().items())
        self._callbacks().clear()
        self._objects().clear()
        for name, callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                logger.warning("Destruction callback of thread-scoped component '%s' failed", name, exc_info=True)
