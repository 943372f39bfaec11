"""
Error types for CamWall.
Every server-side session closure carries a CloseReason.
"""
from enum import Enum


class CamwallError(Exception):
    """Base class for all CamWall errors"""


class ConfigError(CamwallError):
    """Camera roster or server config is missing or malformed"""


class CameraNotFound(CamwallError):
    """Requested camera id is not in the roster"""

    def __init__(self, camera_id):
        super().__init__(f"Camera {camera_id} not found")
        self.camera_id = camera_id


class SpawnError(CamwallError):
    """External worker process could not be launched"""


class SinkWriteError(CamwallError):
    """Response sink is no longer writable"""


class RegistryClosed(CamwallError):
    """Registry is shutting down and refuses new sessions"""


class StreamError(CamwallError):
    """Client-side stream request failed"""


class CloseReason(str, Enum):
    CLIENT_DISCONNECT = 'client_disconnect'
    SINK_WRITE_ERROR = 'sink_write_error'
    WORKER_EXIT = 'worker_exit'
    WORKER_ERROR = 'worker_error'
    SESSION_TIMEOUT = 'session_timeout'
    STALE = 'stale'
    SUPERSEDED = 'superseded'
    CLEANUP = 'cleanup'
    SHUTDOWN = 'shutdown'
