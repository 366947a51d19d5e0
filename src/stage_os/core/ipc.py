"""
Message bridge between the sandbox and the host.

Every host operation is an asynchronous call. Calls that expect an answer carry
a callback token; the host later sends back a ``return`` (one-shot) or
``callback`` (repeatable) message naming that token.

Wire shapes:
    outbound  [module, operation, args] or [module, operation, args, token]
    inbound   ["start"] | ["return", token, args] | ["callback", token, args]
"""

import itertools
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from multiprocessing import Queue as MPQueue
from queue import Empty, Queue
from typing import Any, Callable, Dict, List, Optional

from .errors import CallbackError, DuplicateCompletionError, ProtocolError
from .observable import Observable

log = logging.getLogger(__name__)

TOKEN_PREFIX = "cb"


class MessageType(Enum):
    """Inbound message discriminators."""

    START = "start"
    RETURN = "return"
    CALLBACK = "callback"


@dataclass
class InboundMessage:
    """A parsed host-to-sandbox message."""

    type: MessageType
    token: Optional[str] = None
    args: List[Any] = field(default_factory=list)

    @classmethod
    def from_wire(cls, data: Any) -> "InboundMessage":
        if not isinstance(data, (list, tuple)) or not data:
            raise ProtocolError(f"Malformed inbound message: {data!r}")

        try:
            msg_type = MessageType(data[0])
        except (TypeError, ValueError):
            raise ProtocolError(f"Unknown inbound message type: {data[0]!r}") from None

        if msg_type is MessageType.START:
            return cls(type=msg_type)

        if len(data) < 2 or not isinstance(data[1], str):
            raise ProtocolError(f"Inbound {msg_type.value} message without token: {data!r}")

        args = data[2] if len(data) > 2 and data[2] is not None else []
        if not isinstance(args, (list, tuple)):
            raise ProtocolError(f"Inbound {msg_type.value} arguments must be a list: {data!r}")

        return cls(type=msg_type, token=data[1], args=list(args))


@dataclass
class OutboundCall:
    """A sandbox-to-host call."""

    module: str
    operation: str
    args: List[Any] = field(default_factory=list)
    token: Optional[str] = None

    def to_wire(self) -> list:
        if self.token is None:
            return [self.module, self.operation, self.args]
        return [self.module, self.operation, self.args, self.token]

    @classmethod
    def from_wire(cls, data: Any) -> "OutboundCall":
        if not isinstance(data, (list, tuple)) or len(data) not in (3, 4):
            raise ProtocolError(f"Malformed outbound call: {data!r}")
        token = data[3] if len(data) == 4 else None
        return cls(module=data[0], operation=data[1], args=list(data[2] or []), token=token)

    def __repr__(self) -> str:
        suffix = f" -> {self.token}" if self.token else ""
        return f"OutboundCall({self.module}.{self.operation}{suffix})"


@dataclass
class HostChannel:
    """
    The queue pair connecting one sandbox to its host.

    ``send_queue`` carries outbound calls, ``recv_queue`` inbound messages.
    """

    send_queue: Queue
    recv_queue: Queue

    def send(self, payload: list) -> None:
        """Put a wire payload on the outbound queue."""
        self.send_queue.put_nowait(payload)

    def receive(self, timeout: float = 0.0) -> Optional[list]:
        """Receive one inbound payload, or None if nothing arrived in time."""
        try:
            if timeout <= 0:
                return self.recv_queue.get_nowait()
            return self.recv_queue.get(timeout=timeout)
        except Empty:
            return None

    def reply(self, payload: list) -> None:
        """Host side: put a payload on the inbound queue."""
        self.recv_queue.put_nowait(payload)

    def poll_outbound(self, timeout: float = 0.0) -> Optional[list]:
        """Host side: take one outbound payload, or None."""
        try:
            if timeout <= 0:
                return self.send_queue.get_nowait()
            return self.send_queue.get(timeout=timeout)
        except Empty:
            return None


def create_channel(use_multiprocessing: bool = False) -> HostChannel:
    """Create a channel backed by thread or process queues."""
    if use_multiprocessing:
        return HostChannel(send_queue=MPQueue(), recv_queue=MPQueue())
    return HostChannel(send_queue=Queue(), recv_queue=Queue())


class CallbackRegistry:
    """
    Token to callable map for outstanding calls.

    Tokens are never reused. A token that was minted and later released by its
    owner is "retired": the host may still deliver to it, and such late
    deliveries are distinguishable from tokens this registry never minted.
    A token answered by a ``return`` is "consumed" instead; the most recent
    ``CONSUMED_HISTORY`` of those are remembered so a repeated reply is caught.
    """

    CONSUMED_HISTORY = 1024

    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: Dict[str, Callable] = {}
        self._consumed: "OrderedDict[str, None]" = OrderedDict()
        self._counter = itertools.count()
        self._minted = 0

    def register(self, callback: Callable) -> str:
        if not callable(callback):
            raise CallbackError(
                f"Could not create callback, {type(callback).__name__} is not callable"
            )
        with self._lock:
            number = next(self._counter)
            self._minted = number + 1
            token = f"{TOKEN_PREFIX}{number}"
            self._callbacks[token] = callback
        return token

    def release(self, token: str) -> bool:
        """Unregister ``token``. Returns False if it was not registered."""
        with self._lock:
            return self._callbacks.pop(token, None) is not None

    def lookup(self, token: str) -> Optional[Callable]:
        """
        Return the callable for ``token``.

        Returns None for retired tokens, raises DuplicateCompletionError for
        consumed ones and ProtocolError for tokens that were never minted.
        """
        with self._lock:
            callback = self._callbacks.get(token)
            if callback is not None:
                return callback
            self._check_consumed(token)
            if self._was_minted(token):
                return None
        raise ProtocolError(f"Host referenced unknown callback token {token!r}")

    def consume(self, token: str) -> Optional[Callable]:
        """
        Unregister ``token`` for a one-shot reply and return its callable.

        Same return and errors as ``lookup``.
        """
        with self._lock:
            callback = self._callbacks.pop(token, None)
            if callback is not None:
                self._consumed[token] = None
                if len(self._consumed) > self.CONSUMED_HISTORY:
                    self._consumed.popitem(last=False)
                return callback
            self._check_consumed(token)
            if self._was_minted(token):
                return None
        raise ProtocolError(f"Host referenced unknown callback token {token!r}")

    def _check_consumed(self, token: str) -> None:
        if token in self._consumed:
            raise DuplicateCompletionError(f"Host replied to {token} more than once")

    def _was_minted(self, token: str) -> bool:
        if not token.startswith(TOKEN_PREFIX):
            return False
        number = token[len(TOKEN_PREFIX) :]
        return number.isdigit() and int(number) < self._minted

    def __contains__(self, token: str) -> bool:
        with self._lock:
            return token in self._callbacks

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)


class MessageBridge(Observable):
    """
    The sandbox's only way out.

    Events:
        started  fired after the host's ``start`` message was acknowledged
    """

    def __init__(self, channel: HostChannel):
        self.channel = channel
        self.callbacks = CallbackRegistry()
        self._unique = itertools.count()
        self._unique_lock = threading.Lock()

    def next_unique(self, prefix: str = "") -> str:
        """Mint a process-unique identifier, e.g. for a remote handle."""
        with self._unique_lock:
            return f"{prefix}{next(self._unique)}"

    def make_callback(self, callback: Callable) -> str:
        """Register ``callback`` and return its token."""
        return self.callbacks.register(callback)

    def release(self, token: Optional[str]) -> None:
        """Release a token; unknown or None tokens are ignored."""
        if token is not None:
            self.callbacks.release(token)

    def call(
        self,
        module: str,
        operation: str,
        args: Optional[List[Any]] = None,
        callback: Optional[Callable] = None,
    ) -> Optional[str]:
        """
        Send a call to the host. Never blocks.

        Returns the token minted for ``callback``, if one was given.
        """
        token = self.make_callback(callback) if callback is not None else None
        outbound = OutboundCall(module, operation, list(args or []), token)
        log.debug(f"-> {outbound!r}")
        self.channel.send(outbound.to_wire())
        return token

    def handle_inbound(self, data: Any) -> None:
        """Dispatch one inbound wire message."""
        message = InboundMessage.from_wire(data)

        if message.type is MessageType.START:
            self.call("Basic", "started")
            self.trigger("started")
            return

        if message.type is MessageType.RETURN:
            callback = self.callbacks.consume(message.token)
        else:
            callback = self.callbacks.lookup(message.token)
        if callback is None:
            log.debug(f"Dropping late {message.type.value} for retired token {message.token}")
            return

        callback(*message.args)

    def pump(self, max_messages: int = 10, timeout: float = 0.0) -> int:
        """Handle up to ``max_messages`` pending inbound messages."""
        handled = 0
        for _ in range(max_messages):
            data = self.channel.receive(timeout=timeout if handled == 0 else 0.0)
            if data is None:
                break
            self.handle_inbound(data)
            handled += 1
        return handled

