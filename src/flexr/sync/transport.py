"""
Peer transports for the watch/phone link.

A transport exposes three delivery channels with different guarantees:

- best-effort: immediate, only while the peer is reachable, no retry
- durable: queued by the transport and delivered eventually, survives
  suspension of either side
- application context: a single latest-wins dict

Transports report activation, reachability and inbound messages to a
delegate. Callbacks may arrive on any thread.
"""

import copy
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from ..exceptions import PeerUnreachableError, TransportError

logger = logging.getLogger(__name__)


@runtime_checkable
class TransportDelegate(Protocol):
    """Receiver of transport callbacks."""

    def activation_completed(self, reachable: bool, error: Optional[Exception]) -> None:
        """Activation finished; error is set when it failed."""
        ...

    def reachability_changed(self, reachable: bool) -> None:
        """The peer became reachable or unreachable."""
        ...

    def message_received(self, payload: Dict[str, Any]) -> None:
        """An inbound message arrived on any channel."""
        ...

    def context_received(self, context: Dict[str, Any]) -> None:
        """The peer replaced its application context."""
        ...


class PeerTransport(ABC):
    """Abstract peer link."""

    @abstractmethod
    def activate(self, delegate: TransportDelegate) -> None:
        """Begin activation; completion is reported to the delegate."""
        pass

    @abstractmethod
    def send_best_effort(self, payload: Dict[str, Any]) -> None:
        """Send immediately.

        Raises:
            PeerUnreachableError: If the peer is not reachable right now
            TransportError: If the send fails
        """
        pass

    @abstractmethod
    def send_durable(self, payload: Dict[str, Any]) -> None:
        """Queue for guaranteed eventual delivery."""
        pass

    @abstractmethod
    def update_context(self, context: Dict[str, Any]) -> None:
        """Replace the application context seen by the peer."""
        pass

    @property
    @abstractmethod
    def is_reachable(self) -> bool:
        """Whether a best-effort send would currently reach the peer."""
        pass


class _LoopbackLink:
    """Shared state between two loopback endpoints."""

    def __init__(self, reachable: bool) -> None:
        self.lock = threading.Lock()
        self.reachable = reachable


class LoopbackTransport(PeerTransport):
    """
    In-process transport endpoint for tests and local simulation.

    Usage:
        watch_side, phone_side = LoopbackTransport.pair()
        watch_bridge = WatchSyncBridge(watch_side)
        phone_bridge = PhoneSyncBridge(phone_side)

        watch_side.set_reachable(False)   # both ends see the change
        ...
        watch_side.deliver_pending()      # flush durable sends to the peer

    Best-effort sends are delivered synchronously to the peer's delegate.
    Durable sends are held in an outbox until deliver_pending() is called.
    Every sent payload is recorded per channel for inspection.
    """

    def __init__(
        self,
        link: Optional[_LoopbackLink] = None,
        name: str = "loopback",
        activation_error: Optional[Exception] = None,
    ) -> None:
        self.name = name
        self.activation_error = activation_error
        self._link = link or _LoopbackLink(reachable=True)
        self._peer: Optional["LoopbackTransport"] = None
        self._delegate: Optional[TransportDelegate] = None
        self._outbox: List[Dict[str, Any]] = []

        self.fail_best_effort = False
        self.best_effort_sent: List[Dict[str, Any]] = []
        self.durable_sent: List[Dict[str, Any]] = []
        self.context: Optional[Dict[str, Any]] = None

    @classmethod
    def pair(
        cls,
        reachable: bool = True,
        names: Tuple[str, str] = ("watch", "phone"),
    ) -> Tuple["LoopbackTransport", "LoopbackTransport"]:
        """Create two connected endpoints sharing one reachability flag."""
        link = _LoopbackLink(reachable=reachable)
        first = cls(link=link, name=names[0])
        second = cls(link=link, name=names[1])
        first._peer = second
        second._peer = first
        return first, second

    @property
    def is_reachable(self) -> bool:
        with self._link.lock:
            return self._link.reachable and self._peer is not None

    @property
    def pending_count(self) -> int:
        with self._link.lock:
            return len(self._outbox)

    def activate(self, delegate: TransportDelegate) -> None:
        self._delegate = delegate
        delegate.activation_completed(
            self.is_reachable if self.activation_error is None else False,
            self.activation_error,
        )

    def set_reachable(self, reachable: bool) -> None:
        """Flip reachability for both endpoints and notify their delegates."""
        with self._link.lock:
            if self._link.reachable == reachable:
                return
            self._link.reachable = reachable

        for endpoint in (self, self._peer):
            if endpoint is not None and endpoint._delegate is not None:
                endpoint._delegate.reachability_changed(reachable)

    def send_best_effort(self, payload: Dict[str, Any]) -> None:
        if not self.is_reachable:
            raise PeerUnreachableError(payload.get("type"))
        if self.fail_best_effort:
            raise TransportError(
                f"{self.name}: simulated send failure",
                details={"message_type": payload.get("type")},
            )

        message = copy.deepcopy(payload)
        with self._link.lock:
            self.best_effort_sent.append(message)
        self._deliver(message)

    def send_durable(self, payload: Dict[str, Any]) -> None:
        message = copy.deepcopy(payload)
        with self._link.lock:
            self.durable_sent.append(message)
            self._outbox.append(message)

    def update_context(self, context: Dict[str, Any]) -> None:
        snapshot = copy.deepcopy(context)
        with self._link.lock:
            self.context = snapshot
        peer = self._peer
        if peer is not None and peer._delegate is not None:
            peer._delegate.context_received(copy.deepcopy(snapshot))

    def deliver_pending(self) -> int:
        """Deliver all queued durable messages to the peer, in order.

        Messages stay queued while the peer has not activated.

        Returns:
            Number of messages delivered
        """
        peer = self._peer
        if peer is None or peer._delegate is None:
            return 0

        with self._link.lock:
            pending, self._outbox = self._outbox, []

        for message in pending:
            self._deliver(message)
        return len(pending)

    def _deliver(self, message: Dict[str, Any]) -> None:
        peer = self._peer
        if peer is None or peer._delegate is None:
            logger.debug(f"{self.name}: peer has no delegate, dropping {message.get('type')}")
            return
        peer._delegate.message_received(message)
