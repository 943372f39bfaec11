"""
Camera roster entries and live stream sessions.
"""
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Optional

from ..errors import CloseReason


@dataclass(frozen=True)
class CameraConfig:
    """A configured camera. Loaded once at startup, never mutated."""
    id: int
    name: str
    source_url: str

    def public_info(self) -> dict:
        """Roster entry without the source URL"""
        return {'id': self.id, 'name': self.name}


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass
class StreamSession:
    """Live binding between one camera, one worker and one response sink.

    Owned by the StreamRegistry; nothing else creates or destroys sessions.
    """
    camera_id: int
    worker: Any
    sink: Any
    session_id: str = field(default_factory=new_session_id)
    started_at: float = field(default_factory=time.time)
    frame_count: int = 0
    closed_reason: Optional[CloseReason] = None

    @property
    def closed(self) -> bool:
        return self.closed_reason is not None

    def uptime(self, now: float) -> float:
        return max(0.0, now - self.started_at)
