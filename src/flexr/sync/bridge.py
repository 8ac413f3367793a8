"""
Watch/phone sync bridge.

DeviceSyncBridge is a small state machine over a PeerTransport:

    INACTIVE --activate()--> ACTIVATING --activation_completed()--> ACTIVE
        ^                        |
        +---- activation error --+

close() moves the link to INACTIVE for good. After it, inbound traffic is
dropped and no new work is started.

While ACTIVE the bridge tracks peer reachability. Outbound messages pick a
channel by their delivery needs:

    live metrics        best-effort; queued (bounded, drop-oldest) while
                        the peer is unreachable, flushed as one
                        queuedMetrics batch when it comes back
    segment completion  best-effort when reachable, durable otherwise
    workout summary     always durable
    heart rate alert    best-effort, dropped when unreachable

Inbound messages are routed by their ``type`` to one handler per type;
handlers publish decoded events to subscribers. Transport callbacks may
arrive on any thread; all shared state is guarded by one lock, which is
never held while calling into the transport or a subscriber.
"""

import asyncio
import concurrent.futures
import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Set, Union

from .identity import SessionIdentity, get_session_identity
from .messages import (
    COMMAND_TYPES,
    MessageType,
    decode_data,
    decode_record,
    encode_message,
    message_type,
)
from .transport import PeerTransport
from ..config import get_settings
from ..exceptions import PeerUnreachableError, SyncEncodingError, TransportError
from ..models.sync import (
    HeartRateAlert,
    LiveWorkoutMetrics,
    ReceivedWorkout,
    SegmentCompletion,
    WorkoutSummary,
)
from ..utils.dates import utc_now

logger = logging.getLogger(__name__)

Subscriber = Callable[[Any], None]
Handler = Callable[[Mapping[str, Any]], None]


class LinkState(str, Enum):
    """Activation state of the peer link."""
    INACTIVE = "inactive"
    ACTIVATING = "activating"
    ACTIVE = "active"


@dataclass(frozen=True)
class LinkStatus:
    """Point-in-time snapshot of the bridge."""
    state: LinkState
    reachable: bool
    queued_count: int
    last_sync_at: Optional[datetime]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "reachable": self.reachable,
            "queued_count": self.queued_count,
            "last_sync_at": self.last_sync_at.isoformat() if self.last_sync_at else None,
        }


class DeviceSyncBridge:
    """
    Base bridge shared by both sides of the link.

    Subclasses register inbound handlers in _build_handlers().
    """

    side = "device"

    def __init__(
        self,
        transport: PeerTransport,
        queue_capacity: Optional[int] = None,
        app_version: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        capacity = queue_capacity if queue_capacity is not None else settings.sync_queue_capacity
        if capacity < 1:
            raise ValueError("queue_capacity must be at least 1")

        self.transport = transport
        self.app_version = app_version or settings.watch_app_version
        self.peer_context: Dict[str, Any] = {}

        self._lock = threading.Lock()
        self._state = LinkState.INACTIVE
        self._reachable = False
        self._queue: Deque[LiveWorkoutMetrics] = deque(maxlen=capacity)
        self._last_sync_at: Optional[datetime] = None
        self._has_active_workout = False
        self._closed = False
        self._subscribers: Dict[MessageType, List[Subscriber]] = defaultdict(list)
        self._handlers: Dict[MessageType, Handler] = self._build_handlers()

    def _build_handlers(self) -> Dict[MessageType, Handler]:
        return {}

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> LinkState:
        with self._lock:
            return self._state

    @property
    def is_reachable(self) -> bool:
        with self._lock:
            return self._state == LinkState.ACTIVE and self._reachable

    @property
    def closed(self) -> bool:
        with self._lock:
            return self._closed

    @property
    def queue_capacity(self) -> int:
        return self._queue.maxlen

    @property
    def has_active_workout(self) -> bool:
        with self._lock:
            return self._has_active_workout

    def set_active_workout(self, active: bool) -> None:
        with self._lock:
            self._has_active_workout = active

    def status(self) -> LinkStatus:
        with self._lock:
            return LinkStatus(
                state=self._state,
                reachable=self._state == LinkState.ACTIVE and self._reachable,
                queued_count=len(self._queue),
                last_sync_at=self._last_sync_at,
            )

    def queued_metrics(self) -> List[LiveWorkoutMetrics]:
        """Copy of the metrics waiting for the peer, oldest first."""
        with self._lock:
            return list(self._queue)

    # =========================================================================
    # Transport callbacks
    # =========================================================================

    def activate(self) -> bool:
        """Start activation. Returns False if the link is not INACTIVE or is closed."""
        with self._lock:
            if self._closed:
                logger.debug(f"{self.side}: activate() ignored after close")
                return False
            if self._state != LinkState.INACTIVE:
                logger.debug(f"{self.side}: activate() ignored in state {self._state.value}")
                return False
            self._state = LinkState.ACTIVATING

        try:
            self.transport.activate(self)
        except Exception as e:
            with self._lock:
                self._state = LinkState.INACTIVE
            logger.error(f"{self.side}: activation failed: {e}")
            return False
        return True

    def activation_completed(self, reachable: bool, error: Optional[Exception] = None) -> None:
        if error is not None:
            with self._lock:
                self._state = LinkState.INACTIVE
                self._reachable = False
            logger.error(f"{self.side}: activation failed: {error}")
            return

        with self._lock:
            if self._state != LinkState.ACTIVATING:
                logger.debug(f"{self.side}: late activation callback ignored")
                return
            self._state = LinkState.ACTIVE
            self._reachable = bool(reachable)

        logger.info(f"{self.side}: link active (reachable={bool(reachable)})")
        self.sync_application_context()
        if reachable:
            self._flush_queue()

    def reachability_changed(self, reachable: bool) -> None:
        with self._lock:
            if self._state != LinkState.ACTIVE:
                logger.debug(f"{self.side}: reachability change ignored while {self._state.value}")
                return
            recovered = reachable and not self._reachable
            self._reachable = bool(reachable)

        logger.info(f"{self.side}: peer reachable={bool(reachable)}")
        if recovered:
            self._flush_queue()

    def message_received(self, payload: Mapping[str, Any]) -> None:
        if self.closed:
            logger.debug(f"{self.side}: message dropped, bridge closed")
            return
        self._dispatch(payload)

    def context_received(self, context: Mapping[str, Any]) -> None:
        """Typed contexts are dispatched like messages; others are kept as-is."""
        if self.closed:
            logger.debug(f"{self.side}: context dropped, bridge closed")
            return
        if message_type(context) is not None:
            self._dispatch(context)
            return
        with self._lock:
            self.peer_context = dict(context)
        logger.debug(f"{self.side}: received application context {sorted(context)}")

    # =========================================================================
    # Subscribers and inbound dispatch
    # =========================================================================

    def subscribe(
        self,
        msg_type: Union[MessageType, str],
        callback: Subscriber,
    ) -> Callable[[], None]:
        """Register a callback for decoded events of one type.

        Returns:
            A function that removes the subscription
        """
        kind = MessageType(msg_type)
        with self._lock:
            self._subscribers[kind].append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers[kind]:
                    self._subscribers[kind].remove(callback)

        return unsubscribe

    def _publish(self, kind: MessageType, event: Any) -> None:
        with self._lock:
            callbacks = list(self._subscribers.get(kind, ()))

        for callback in callbacks:
            try:
                callback(event)
            except Exception:
                logger.exception(f"{self.side}: subscriber for {kind.value} failed")

    def _dispatch(self, payload: Mapping[str, Any]) -> None:
        kind = message_type(payload)
        handler = self._handlers.get(kind) if kind is not None else None
        if handler is None:
            raw = payload.get("type") if isinstance(payload, Mapping) else None
            logger.warning(f"{self.side}: dropping message with unhandled type {raw!r}")
            return

        try:
            handler(payload)
        except ValueError as e:
            logger.error(f"{self.side}: malformed {kind.value} message: {e}")

    # =========================================================================
    # Outbound
    # =========================================================================

    def _encode(self, msg_type: MessageType, record: Any = None, **extra: Any) -> Optional[Dict[str, Any]]:
        try:
            return encode_message(msg_type, record, **extra)
        except SyncEncodingError as e:
            logger.error(f"{self.side}: {e.message}; send abandoned")
            return None

    def _send_best_effort(self, payload: Dict[str, Any]) -> bool:
        try:
            self.transport.send_best_effort(payload)
            return True
        except TransportError as e:
            logger.warning(f"{self.side}: {payload['type']} send failed: {e.message}")
            return False

    def _send_durable(self, payload: Dict[str, Any]) -> bool:
        try:
            self.transport.send_durable(payload)
            return True
        except TransportError as e:
            logger.error(f"{self.side}: durable {payload['type']} send failed: {e.message}")
            return False

    def _flush_queue(self) -> None:
        with self._lock:
            if not self._queue:
                return
            batch = list(self._queue)
            self._queue.clear()

        payload = self._encode(MessageType.QUEUED_METRICS, batch, count=len(batch))
        if payload is None:
            return
        if self._send_durable(payload):
            logger.info(f"{self.side}: flushed {len(batch)} queued metrics")

    def close(self) -> None:
        """Shut the link down; inbound traffic is dropped from now on."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._state = LinkState.INACTIVE
            self._reachable = False
        logger.info(f"{self.side}: bridge closed")

    def sync_application_context(self) -> bool:
        """Push {appVersion, lastSyncDate, hasActiveWorkout} to the peer."""
        now = utc_now()
        context = {
            "appVersion": self.app_version,
            "lastSyncDate": now.isoformat(),
            "hasActiveWorkout": self.has_active_workout,
        }
        try:
            self.transport.update_context(context)
        except TransportError as e:
            logger.error(f"{self.side}: context sync failed: {e.message}")
            return False

        with self._lock:
            self._last_sync_at = now
        return True


class WatchSyncBridge(DeviceSyncBridge):
    """
    Wearable side of the link.

    Streams workout data to the phone and receives workouts, commands,
    settings and the signed-in user's id from it.

    A plan_service needs an event loop to run its fetches on: pass one, or
    construct the bridge inside a running loop.
    """

    side = "watch"

    def __init__(
        self,
        transport: PeerTransport,
        plan_service=None,
        identity: Optional[SessionIdentity] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        queue_capacity: Optional[int] = None,
        app_version: Optional[str] = None,
    ) -> None:
        super().__init__(transport, queue_capacity=queue_capacity, app_version=app_version)
        self.plan_service = plan_service
        self.identity = identity or get_session_identity()
        if plan_service is not None and loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise ValueError("plan_service requires an event loop for background fetches") from None
        self._loop = loop
        self._background: Set[Union[asyncio.Future, concurrent.futures.Future]] = set()

    def _build_handlers(self) -> Dict[MessageType, Handler]:
        handlers: Dict[MessageType, Handler] = {
            MessageType.WORKOUT: self._handle_workout,
            MessageType.SETTINGS: self._handle_settings,
            MessageType.USER_ID: self._handle_user_id,
        }
        for command in COMMAND_TYPES:
            handlers[command] = self._handle_command
        return handlers

    # Outbound ---------------------------------------------------------------

    def send_live_metrics(self, metrics: LiveWorkoutMetrics) -> None:
        """Send now if the phone is reachable, otherwise queue.

        A metric whose send finds the phone gone after all is queued too,
        and flushed right away if the link has already recovered.
        """
        payload = self._encode(MessageType.LIVE_METRICS, metrics)
        if payload is None:
            return

        with self._lock:
            if not (self._state == LinkState.ACTIVE and self._reachable):
                self._enqueue(metrics)
                return

        try:
            self.transport.send_best_effort(payload)
        except PeerUnreachableError:
            with self._lock:
                self._enqueue(metrics)
            if self.is_reachable:
                self._flush_queue()
        except TransportError as e:
            logger.warning(f"{self.side}: liveMetrics send failed: {e.message}")

    def _enqueue(self, metrics: LiveWorkoutMetrics) -> None:
        # Caller holds self._lock
        if len(self._queue) == self._queue.maxlen:
            logger.debug(f"{self.side}: metrics queue full, dropping oldest")
        self._queue.append(metrics)

    def send_workout_summary(self, summary: WorkoutSummary) -> None:
        """Queue the summary on the durable channel; never raises."""
        payload = self._encode(MessageType.WORKOUT_SUMMARY, summary, timestamp=time.time())
        if payload is None:
            return
        if self._send_durable(payload):
            logger.info(f"{self.side}: workout summary {summary.id} queued for delivery")

    def send_segment_completion(self, completion: SegmentCompletion) -> None:
        """Immediate when reachable; durable otherwise or if the send fails."""
        payload = self._encode(MessageType.SEGMENT_COMPLETE, completion)
        if payload is None:
            return

        if self.is_reachable and self._send_best_effort(payload):
            return
        self._send_durable(payload)

    def send_heart_rate_alert(self, current_hr: int, threshold: int) -> bool:
        """Alert the phone; dropped when it is not reachable."""
        if not self.is_reachable:
            logger.debug(f"{self.side}: heart rate alert dropped, phone unreachable")
            return False

        alert = HeartRateAlert(current_hr=current_hr, threshold=threshold)
        payload = self._encode(MessageType.HEART_RATE_ALERT, **alert.to_wire())
        if payload is None:
            return False
        return self._send_best_effort(payload)

    # Inbound ----------------------------------------------------------------

    def _handle_workout(self, payload: Mapping[str, Any]) -> None:
        workout = decode_record(payload, ReceivedWorkout)
        logger.info(f"{self.side}: received workout '{workout.name}'")
        self._publish(MessageType.WORKOUT, workout)

    def _handle_command(self, payload: Mapping[str, Any]) -> None:
        kind = message_type(payload)
        if kind == MessageType.WORKOUT_START:
            self.set_active_workout(True)
        elif kind == MessageType.WORKOUT_STOP:
            self.set_active_workout(False)
        self._publish(kind, dict(payload))

    def _handle_settings(self, payload: Mapping[str, Any]) -> None:
        settings = decode_data(payload)
        if not isinstance(settings, dict):
            raise ValueError("settings data must be an object")
        self._publish(MessageType.SETTINGS, settings)

    def _handle_user_id(self, payload: Mapping[str, Any]) -> None:
        raw = payload.get("userId")
        try:
            user_id = self.identity.set_user_id(raw)
        except (TypeError, ValueError):
            logger.warning(f"{self.side}: ignoring invalid userId in sync message")
            return

        self._publish(MessageType.USER_ID, user_id)
        if self.plan_service is not None:
            self._spawn_plan_fetch(user_id)

    # Background work --------------------------------------------------------

    def _spawn_plan_fetch(self, user_id: str) -> None:
        """Start fetching the plan without blocking the caller.

        A newer identity cancels any fetch still running for an older one.
        """
        loop = self._loop
        if self.closed:
            return
        if loop.is_closed():
            logger.warning(f"{self.side}: event loop closed, skipping workout fetch")
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        self.cancel_background()
        coro = self.plan_service.fetch_todays_workouts(user_id)
        if loop is running:
            future = loop.create_task(coro)
        else:
            future = asyncio.run_coroutine_threadsafe(coro, loop)

        with self._lock:
            closed = self._closed
            if not closed:
                self._background.add(future)
        if closed:
            future.cancel()
            return
        future.add_done_callback(self._background_done)

    def _background_done(self, future) -> None:
        with self._lock:
            self._background.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            logger.error(f"{self.side}: background workout fetch failed: {error}")

    @property
    def background_count(self) -> int:
        with self._lock:
            return len(self._background)

    async def wait_background(self, timeout: Optional[float] = None) -> bool:
        """Wait for outstanding background fetches.

        Returns:
            True if none are left running
        """
        with self._lock:
            pending = list(self._background)
        if not pending:
            return True

        waitables = [
            asyncio.wrap_future(f) if isinstance(f, concurrent.futures.Future) else f
            for f in pending
        ]
        _, still_pending = await asyncio.wait(waitables, timeout=timeout)
        return not still_pending

    def cancel_background(self) -> int:
        """Cancel outstanding background fetches; returns how many."""
        with self._lock:
            pending = list(self._background)
        for future in pending:
            future.cancel()
        return len(pending)

    def close(self) -> None:
        """Close the link and cancel outstanding background fetches."""
        super().close()
        cancelled = self.cancel_background()
        if cancelled:
            logger.info(f"{self.side}: cancelled {cancelled} background fetches")


class PhoneSyncBridge(DeviceSyncBridge):
    """
    Phone side of the link.

    Sends workouts, commands and the user's id to the watch and publishes
    what the watch streams back.
    """

    side = "phone"

    def _build_handlers(self) -> Dict[MessageType, Handler]:
        return {
            MessageType.LIVE_METRICS: self._handle_live_metrics,
            MessageType.SEGMENT_COMPLETE: self._handle_segment_complete,
            MessageType.WORKOUT_SUMMARY: self._handle_workout_summary,
            MessageType.HEART_RATE_ALERT: self._handle_heart_rate_alert,
            MessageType.QUEUED_METRICS: self._handle_queued_metrics,
        }

    # Outbound ---------------------------------------------------------------

    def send_workout(self, workout: ReceivedWorkout) -> bool:
        """Push a workout for immediate start; dropped when unreachable."""
        if not self.is_reachable:
            logger.info(f"{self.side}: watch not reachable for workout send")
            return False
        payload = self._encode(MessageType.WORKOUT, workout)
        if payload is None:
            return False
        return self._send_best_effort(payload)

    def _send_command(self, kind: MessageType) -> bool:
        if not self.is_reachable:
            logger.debug(f"{self.side}: {kind.value} dropped, watch unreachable")
            return False
        payload = self._encode(kind, timestamp=time.time())
        if payload is None:
            return False
        return self._send_best_effort(payload)

    def send_start_command(self) -> bool:
        return self._send_command(MessageType.WORKOUT_START)

    def send_pause_command(self) -> bool:
        return self._send_command(MessageType.WORKOUT_PAUSE)

    def send_resume_command(self) -> bool:
        return self._send_command(MessageType.WORKOUT_RESUME)

    def send_stop_command(self) -> bool:
        return self._send_command(MessageType.WORKOUT_STOP)

    def send_settings(self, settings: Dict[str, Any]) -> bool:
        """Send watch settings; durable when the watch is unreachable."""
        payload = self._encode(MessageType.SETTINGS, settings)
        if payload is None:
            return False
        if self.is_reachable and self._send_best_effort(payload):
            return True
        return self._send_durable(payload)

    def send_user_id(self, user_id: str) -> str:
        """Share the signed-in user's id with the watch.

        Tries an immediate message, then the application context, then
        the durable channel.

        Returns:
            The channel used: "message", "context", "durable" or "failed"
        """
        if self.state != LinkState.ACTIVE:
            logger.warning(f"{self.side}: link not active, userId not sent")
            return "failed"

        payload = self._encode(MessageType.USER_ID, userId=str(user_id))
        if payload is None:
            return "failed"

        if self.is_reachable and self._send_best_effort(payload):
            return "message"

        try:
            self.transport.update_context(payload)
            return "context"
        except TransportError as e:
            logger.warning(f"{self.side}: userId context update failed: {e.message}")

        return "durable" if self._send_durable(payload) else "failed"

    # Inbound ----------------------------------------------------------------

    def _handle_live_metrics(self, payload: Mapping[str, Any]) -> None:
        self._publish(MessageType.LIVE_METRICS, decode_record(payload, LiveWorkoutMetrics))

    def _handle_segment_complete(self, payload: Mapping[str, Any]) -> None:
        self._publish(MessageType.SEGMENT_COMPLETE, decode_record(payload, SegmentCompletion))

    def _handle_workout_summary(self, payload: Mapping[str, Any]) -> None:
        summary = decode_record(payload, WorkoutSummary)
        logger.info(f"{self.side}: received workout summary {summary.id}")
        self._publish(MessageType.WORKOUT_SUMMARY, summary)

    def _handle_heart_rate_alert(self, payload: Mapping[str, Any]) -> None:
        fields = {k: v for k, v in payload.items() if k != "type"}
        self._publish(MessageType.HEART_RATE_ALERT, HeartRateAlert.model_validate(fields))

    def _handle_queued_metrics(self, payload: Mapping[str, Any]) -> None:
        items = decode_data(payload)
        if not isinstance(items, list):
            raise ValueError("queuedMetrics data must be a list")
        batch = [LiveWorkoutMetrics.model_validate(item) for item in items]
        if payload.get("count") not in (None, len(batch)):
            logger.warning(
                f"{self.side}: queuedMetrics count {payload.get('count')} != {len(batch)} items"
            )
        self._publish(MessageType.QUEUED_METRICS, batch)
