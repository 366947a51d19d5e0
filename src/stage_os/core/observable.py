"""
Event registration and dispatch for proxies and services.

Any class can mix in ``Observable``; listener storage is created lazily, so
subclasses do not need to call a base constructor for it.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence


@dataclass
class Event:
    """Context object passed as the first argument to every handler of one trigger."""

    name: str
    target: Any = None


class _OneShot:
    """Handler wrapper that unbinds itself before its first call."""

    def __init__(self, owner: "Observable", name: str, handler: Callable):
        self.owner = owner
        self.name = name
        self.handler = handler

    def __call__(self, *args):
        self.owner.unbind(self.name, self)
        return self.handler(*args)


class Observable:
    """Mixin adding bind/unbind/one/trigger."""

    def _listener_map(self) -> Dict[str, List[Callable]]:
        listeners = self.__dict__.get("_listeners")
        if listeners is None:
            listeners = {}
            self.__dict__["_listeners"] = listeners
        return listeners

    def bind(self, name: str, handler: Callable) -> None:
        """Bind ``handler`` to event ``name``."""
        self._listener_map().setdefault(name, []).append(handler)

    def unbind(self, name: str, handler: Callable) -> None:
        """Unbind ``handler``; unknown handlers are ignored."""
        handlers = self._listener_map().get(name)
        if not handlers:
            return

        for i, bound in enumerate(handlers):
            # Bound methods are recreated on access, so compare by equality
            if bound == handler or (isinstance(bound, _OneShot) and bound.handler == handler):
                del handlers[i]
                return

    def one(self, name: str, handler: Callable) -> None:
        """Bind ``handler`` for a single firing of ``name``."""
        self.bind(name, _OneShot(self, name, handler))

    def trigger(self, name: str, args: Optional[Sequence[Any]] = None) -> None:
        """
        Call every handler currently bound to ``name``, in binding order.

        Handlers receive a fresh ``Event`` followed by ``args``. Handlers bound
        or unbound while the trigger runs do not change who gets called.
        """
        handlers = self._listener_map().get(name)
        if not handlers:
            return

        event = Event(name=name, target=self)
        for handler in list(handlers):
            handler(event, *(args or ()))

    def listener_count(self, name: str) -> int:
        """Number of handlers bound to ``name``."""
        return len(self._listener_map().get(name, ()))
