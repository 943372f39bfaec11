"""
Configuration classes and camera roster loading for CamWall.
"""
import json
import os
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import ConfigError
from .models.camera import CameraConfig


class Config:
    """Base configuration class"""

    # Camera roster
    CAMERA_CONFIG = os.environ.get('CAMERA_CONFIG', 'config.json')

    # Server (overrides the roster's "server" section when set)
    HOST = os.environ.get('HOST')
    PORT = int(os.environ['PORT']) if os.environ.get('PORT') else None

    # Transcoding worker
    FFMPEG_PATH = os.environ.get('FFMPEG_PATH', 'ffmpeg')
    STREAM_WIDTH = int(os.environ.get('STREAM_WIDTH', '640'))
    STREAM_HEIGHT = int(os.environ.get('STREAM_HEIGHT', '480'))
    STREAM_FPS = int(os.environ.get('STREAM_FPS', '8'))
    STREAM_QUALITY = int(os.environ.get('STREAM_QUALITY', '8'))

    # Multipart relay
    STREAM_BOUNDARY = os.environ.get('STREAM_BOUNDARY', 'myboundary')
    SINK_WRITE_TIMEOUT = float(os.environ.get('SINK_WRITE_TIMEOUT', '10'))

    # Session lifecycle (seconds)
    IDLE_TIMEOUT = float(os.environ.get('IDLE_TIMEOUT', str(30 * 60)))
    STALE_SESSION_AGE = float(os.environ.get('STALE_SESSION_AGE', str(60 * 60)))
    SWEEP_INTERVAL = float(os.environ.get('SWEEP_INTERVAL', str(20 * 60)))

    # Logging
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    LOG_DIR = os.environ.get('LOG_DIR')

    DEBUG = os.environ.get('DEBUG', 'false').lower() == 'true'
    TESTING = False


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    LOG_LEVEL = 'DEBUG'


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False


class TestingConfig(Config):
    """Configuration used by the test suite"""
    TESTING = True
    LOG_DIR = None
    SINK_WRITE_TIMEOUT = 2.0


@dataclass(frozen=True)
class Roster:
    """Cameras and listen address loaded from the roster file"""
    cameras: Tuple[CameraConfig, ...]
    host: str = '0.0.0.0'
    port: int = 3000

    def get(self, camera_id: int) -> Optional[CameraConfig]:
        for camera in self.cameras:
            if camera.id == camera_id:
                return camera
        return None


def _parse_camera(entry, index: int) -> CameraConfig:
    if not isinstance(entry, dict):
        raise ConfigError(f"cameras[{index}] must be an object")

    source_url = entry.get('source_url', entry.get('rtsp_url'))
    camera_id = entry.get('id')
    name = entry.get('name')

    if isinstance(camera_id, bool) or not isinstance(camera_id, int):
        raise ConfigError(f"cameras[{index}].id must be an integer")
    if not isinstance(name, str) or not name:
        raise ConfigError(f"cameras[{index}].name must be a non-empty string")
    if not isinstance(source_url, str) or not source_url:
        raise ConfigError(f"cameras[{index}] needs a rtsp_url or source_url")

    return CameraConfig(id=camera_id, name=name, source_url=source_url)


def parse_roster(data) -> Roster:
    """Build a Roster from the decoded JSON document"""
    if not isinstance(data, dict):
        raise ConfigError("Roster must be a JSON object")

    entries = data.get('cameras')
    if not isinstance(entries, list):
        raise ConfigError("Roster needs a 'cameras' list")

    cameras = tuple(_parse_camera(entry, i) for i, entry in enumerate(entries))

    seen = set()
    for camera in cameras:
        if camera.id in seen:
            raise ConfigError(f"Duplicate camera id {camera.id}")
        seen.add(camera.id)

    server = data.get('server') or {}
    if not isinstance(server, dict):
        raise ConfigError("'server' must be an object")
    host = server.get('host', '0.0.0.0')
    port = server.get('port', 3000)
    if not isinstance(port, int) or isinstance(port, bool):
        raise ConfigError("server.port must be an integer")

    return Roster(cameras=cameras, host=host, port=port)


def load_roster(path: str) -> Roster:
    """Load the camera roster file. Any problem is fatal at startup."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Camera config not found: {path}")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Camera config {path} is not valid JSON: {e}")
    except OSError as e:
        raise ConfigError(f"Could not read camera config {path}: {e}")

    return parse_roster(data)
