"""
Per-camera reconnection state machine for a display wall viewer.

Each camera tile owns a stream client. A failed or ended stream is retried
with a linear backoff (3s, 5s, 7s, 9s, 11s); after the fifth retry fails the
tile gives up until someone asks for a manual reconnect.
"""
import math
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable, Optional

from ..logs import get_logger
from ..services.timers import TimerHandle, TimerService

log = get_logger('client')

MAX_ATTEMPTS = 5
BASE_DELAY = 3.0
STEP_DELAY = 2.0
CONNECT_STAGGER = 0.1
MANUAL_RECONNECT_DELAY = 0.5
RECONNECT_ALL_STAGGER = 1.0

CONNECTING_TEXT = 'Connecting...'
RECONNECTING_TEXT = 'Reconnecting...'
FAILED_TEXT = 'Connection failed - check camera settings'


class ConnectionState(Enum):
    IDLE = 'idle'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    RETRY_PENDING = 'retry_pending'
    FAILED = 'failed'


@dataclass
class ReconnectState:
    camera_id: int
    position: int
    attempt_count: int = 0
    is_reconnecting: bool = False
    pending_retry: Optional[TimerHandle] = None
    pending_connect: Optional[TimerHandle] = None
    state: ConnectionState = ConnectionState.IDLE
    request_id: int = 0


def retry_delay(attempt_count: int) -> float:
    """Delay before retry number attempt_count + 1"""
    return BASE_DELAY + attempt_count * STEP_DELAY


class StatusDisplay:
    """Where a tile's status is shown. The default only logs."""

    def show(self, camera_id: int, state: ConnectionState, message: str = ''):
        if message:
            log.info(f"Camera {camera_id}: {message}")

    def clear_source(self, camera_id: int):
        pass


class ReconnectController:
    """Drives connect / retry / give-up for every camera on the wall.

    client_factory(camera_id) returns a stream client exposing
    open(url, on_frame_ready, on_error, on_abort) and disconnect().
    """

    def __init__(self, cameras: Iterable[int], client_factory: Callable,
                 timers: Optional[TimerService] = None,
                 display: Optional[StatusDisplay] = None,
                 base_url: str = '',
                 max_attempts: int = MAX_ATTEMPTS):
        self.base_url = base_url.rstrip('/')
        self.max_attempts = max_attempts
        self._timers = timers or TimerService()
        self._display = display or StatusDisplay()
        self._lock = threading.RLock()
        self._states: Dict[int, ReconnectState] = {}
        self._clients = {}
        self._reconnect_all_handles = []

        for position, camera_id in enumerate(cameras, start=1):
            self._states[camera_id] = ReconnectState(camera_id=camera_id, position=position)
            self._clients[camera_id] = client_factory(camera_id)

    @property
    def camera_ids(self):
        return list(self._states)

    def state_of(self, camera_id: int) -> ReconnectState:
        return self._states[camera_id]

    def stream_url(self, camera_id: int) -> str:
        """Stream URL with cache-defeating query parameters"""
        return (f"{self.base_url}/camera/{camera_id}/stream"
                f"?t={int(time.time() * 1000)}&r={random.random()}")

    def start(self):
        for camera_id in self.camera_ids:
            self.connect(camera_id)

    def stop(self):
        """Cancel every timer and disconnect every client"""
        with self._lock:
            for handle in self._reconnect_all_handles:
                self._timers.cancel(handle)
            self._reconnect_all_handles = []
            for state in self._states.values():
                self._cancel_pending(state)
                state.is_reconnecting = False
                self._clear_source(state)

    # =========================================================================
    # Transitions
    # =========================================================================

    def connect(self, camera_id: int):
        with self._lock:
            state = self._states[camera_id]
            if state.is_reconnecting:
                log.debug(f"Camera {camera_id} already reconnecting, skipping...")
                return

            state.is_reconnecting = True
            self._timers.cancel(state.pending_retry)
            state.pending_retry = None
            state.state = ConnectionState.CONNECTING
            self._display.show(camera_id, state.state, CONNECTING_TEXT)
            self._clear_source(state)

            self._timers.cancel(state.pending_connect)
            state.pending_connect = self._timers.schedule(
                state.position * CONNECT_STAGGER, self._issue_request, camera_id
            )

    def _issue_request(self, camera_id: int):
        with self._lock:
            state = self._states[camera_id]
            state.pending_connect = None
            if state.state is not ConnectionState.CONNECTING:
                return
            state.request_id += 1
            request_id = state.request_id
            url = self.stream_url(camera_id)
            log.debug(f"Connecting to camera {camera_id} stream: {url}")
            self._clients[camera_id].open(
                url,
                on_frame_ready=lambda *_: self._on_frame_ready(camera_id, request_id),
                on_error=lambda *_: self._on_error(camera_id, request_id),
                on_abort=lambda *_: self._on_abort(camera_id, request_id),
            )

    def _on_frame_ready(self, camera_id: int, request_id: int):
        with self._lock:
            state = self._states[camera_id]
            if request_id != state.request_id or state.state is ConnectionState.CONNECTED:
                return
            log.info(f"Camera {camera_id} stream connected")
            state.state = ConnectionState.CONNECTED
            state.attempt_count = 0
            state.is_reconnecting = False
            self._display.show(camera_id, state.state)

    def _on_error(self, camera_id: int, request_id: int):
        with self._lock:
            state = self._states[camera_id]
            if request_id != state.request_id:
                return
            log.warning(f"Camera {camera_id} stream error")
            state.is_reconnecting = False
            self.handle_connection_error(camera_id)

    def _on_abort(self, camera_id: int, request_id: int):
        with self._lock:
            state = self._states[camera_id]
            if request_id != state.request_id:
                return
            log.info(f"Camera {camera_id} stream aborted")
            state.is_reconnecting = False
            state.state = ConnectionState.IDLE

    def handle_connection_error(self, camera_id: int):
        with self._lock:
            state = self._states[camera_id]
            self._timers.cancel(state.pending_retry)
            state.pending_retry = None

            attempts = state.attempt_count
            if attempts < self.max_attempts:
                state.attempt_count = attempts + 1
                delay = retry_delay(attempts)
                state.state = ConnectionState.RETRY_PENDING
                self._display.show(
                    camera_id, state.state,
                    f"Connection lost. Retrying in {math.ceil(delay)}s... "
                    f"({state.attempt_count}/{self.max_attempts})"
                )
                state.pending_retry = self._timers.schedule(delay, self._retry, camera_id)
            else:
                state.state = ConnectionState.FAILED
                state.is_reconnecting = False
                self._clear_source(state)
                self._display.show(camera_id, state.state, FAILED_TEXT)

    def _retry(self, camera_id: int):
        with self._lock:
            state = self._states[camera_id]
            if state.state is not ConnectionState.RETRY_PENDING:
                return
            log.info(f"Auto-reconnecting camera {camera_id}, attempt {state.attempt_count}")
        self.connect(camera_id)

    def manual_reconnect(self, camera_id: int):
        with self._lock:
            log.info(f"Manual reconnect for camera {camera_id}")
            state = self._states[camera_id]
            self._cancel_pending(state)
            state.attempt_count = 0
            state.is_reconnecting = False
            state.state = ConnectionState.IDLE
            self._clear_source(state)
            state.pending_retry = self._timers.schedule(
                MANUAL_RECONNECT_DELAY, self.connect, camera_id
            )

    def reconnect_all(self):
        """Manual reconnect for every camera, one second apart"""
        log.info("Reconnecting all cameras with staggered timing...")
        with self._lock:
            for handle in self._reconnect_all_handles:
                self._timers.cancel(handle)

            for state in self._states.values():
                self._display.show(state.camera_id, state.state, RECONNECTING_TEXT)

            self._reconnect_all_handles = [
                self._timers.schedule(index * RECONNECT_ALL_STAGGER,
                                      self.manual_reconnect, camera_id)
                for index, camera_id in enumerate(self._states)
            ]

    # =========================================================================
    # Helpers
    # =========================================================================

    def _cancel_pending(self, state: ReconnectState):
        self._timers.cancel(state.pending_retry)
        self._timers.cancel(state.pending_connect)
        state.pending_retry = None
        state.pending_connect = None

    def _clear_source(self, state: ReconnectState):
        # late events from the request being dropped are ignored from here on
        state.request_id += 1
        self._clients[state.camera_id].disconnect()
        self._display.clear_source(state.camera_id)
