"""
Headless display wall monitor.
Fetches the roster from a CamWall server and keeps every camera stream open.
"""
from typing import Callable, List, Optional

import httpx

from ..logs import get_logger
from ..services.timers import TimerService
from .reconnect import ConnectionState, ReconnectController, StatusDisplay
from .stream import HttpStreamClient

log = get_logger('monitor')


def fetch_cameras(base_url: str, timeout: float = 5.0,
                  transport: Optional[httpx.BaseTransport] = None) -> List[dict]:
    """GET /api/cameras"""
    with httpx.Client(timeout=timeout, transport=transport) as client:
        response = client.get(f"{base_url.rstrip('/')}/api/cameras")
        response.raise_for_status()
        return response.json()


class LoggingDisplay(StatusDisplay):
    """Logs tile status changes and remembers the latest message per camera"""

    def __init__(self, names: Optional[dict] = None):
        self.names = names or {}
        self.messages = {}

    def show(self, camera_id, state, message=''):
        label = self.names.get(camera_id, f"Camera {camera_id}")
        self.messages[camera_id] = message
        if state is ConnectionState.FAILED:
            log.error(f"{label}: {message}")
        elif state is ConnectionState.CONNECTED:
            log.info(f"{label}: connected")
        elif message:
            log.info(f"{label}: {message}")


class WallMonitor:
    """Keeps one reconnecting stream per camera on the roster"""

    def __init__(self, base_url: str, cameras: Optional[List[dict]] = None,
                 client_factory: Optional[Callable] = None,
                 timers: Optional[TimerService] = None,
                 stream_timeout: float = 10.0):
        self.base_url = base_url.rstrip('/')
        self.cameras = cameras
        self._client_factory = client_factory or (
            lambda camera_id: HttpStreamClient(timeout=stream_timeout)
        )
        self._timers = timers or TimerService()
        self.display = None
        self.controller: Optional[ReconnectController] = None

    def start(self):
        if self.cameras is None:
            self.cameras = fetch_cameras(self.base_url)
        log.info(f"Loaded {len(self.cameras)} cameras from {self.base_url}")

        self.display = LoggingDisplay({c['id']: c['name'] for c in self.cameras})
        self.controller = ReconnectController(
            [c['id'] for c in self.cameras],
            self._client_factory,
            timers=self._timers,
            display=self.display,
            base_url=self.base_url,
        )
        self.controller.start()

    def reconnect_all(self):
        if self.controller is not None:
            self.controller.reconnect_all()

    def stop(self):
        if self.controller is not None:
            self.controller.stop()

    def summary(self) -> dict:
        """Current state per camera id"""
        if self.controller is None:
            return {}
        return {
            camera_id: self.controller.state_of(camera_id).state.value
            for camera_id in self.controller.camera_ids
        }
