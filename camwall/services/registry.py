"""
Stream session registry for CamWall.

Holds at most one live session per camera. Every way a session can end
(client gone, write failure, worker exit, timeout, sweep, supersede, cleanup,
shutdown) goes through close_session().
"""
import threading
import time
from functools import partial
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from ..errors import CameraNotFound, CloseReason, RegistryClosed, SinkWriteError
from ..logs import get_logger
from ..models.camera import CameraConfig, StreamSession
from .demux import DiagnosticScanner, FrameDemuxer
from .relay import MultipartRelayWriter
from .timers import TimerHandle, TimerService
from .worker import ManagedWorker, build_ffmpeg_args

log = get_logger('registry')

IDLE_TIMEOUT = 30 * 60
STALE_SESSION_AGE = 60 * 60
SWEEP_INTERVAL = 20 * 60


class StreamRegistry:
    """Owns the camera -> session map and the per-camera cleanup timers"""

    def __init__(self, cameras: Iterable[CameraConfig],
                 worker_factory: Callable[[str, Sequence[str], str], object] = ManagedWorker.start,
                 timers: Optional[TimerService] = None,
                 clock: Callable[[], float] = time.time,
                 command: str = 'ffmpeg',
                 worker_args: Callable[[str], List[str]] = build_ffmpeg_args,
                 boundary: str = 'myboundary',
                 idle_timeout: float = IDLE_TIMEOUT,
                 stale_after: float = STALE_SESSION_AGE,
                 sweep_interval: float = SWEEP_INTERVAL):
        self._cameras: Dict[int, CameraConfig] = {c.id: c for c in cameras}
        self._worker_factory = worker_factory
        self._timers = timers or TimerService()
        self._clock = clock
        self.command = command
        self._worker_args = worker_args
        self.boundary = boundary
        self.idle_timeout = idle_timeout
        self.stale_after = stale_after
        self.sweep_interval = sweep_interval

        self._lock = threading.RLock()
        self._sessions: Dict[str, StreamSession] = {}
        self._cleanup_timers: Dict[int, Tuple[str, TimerHandle]] = {}
        self._admission_locks: Dict[int, threading.Lock] = {}
        self._sweep_handle: Optional[TimerHandle] = None
        self._closed = False

    # =========================================================================
    # Lookups
    # =========================================================================

    @property
    def cameras(self) -> List[CameraConfig]:
        return list(self._cameras.values())

    def get_camera(self, camera_id: int) -> CameraConfig:
        camera = self._cameras.get(camera_id)
        if camera is None:
            raise CameraNotFound(camera_id)
        return camera

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def get_session(self, session_id: str) -> Optional[StreamSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def sessions_for(self, camera_id: int) -> List[StreamSession]:
        with self._lock:
            return [s for s in self._sessions.values() if s.camera_id == camera_id]

    def has_timer(self, camera_id: int) -> bool:
        with self._lock:
            return camera_id in self._cleanup_timers

    def describe(self) -> dict:
        """Per-camera session count and uptime, for the health endpoint"""
        now = self._clock()
        summary = {}
        with self._lock:
            for session in self._sessions.values():
                entry = summary.setdefault(session.camera_id, {'count': 0, 'uptimeSeconds': 0})
                entry['count'] += 1
                entry['uptimeSeconds'] = round(session.uptime(now))
        return summary

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    def _admission_lock(self, camera_id: int) -> threading.Lock:
        with self._lock:
            lock = self._admission_locks.get(camera_id)
            if lock is None:
                lock = self._admission_locks[camera_id] = threading.Lock()
            return lock

    def open_session(self, camera_id: int, sink) -> StreamSession:
        """Start streaming camera_id into sink, replacing any existing session.

        Raises CameraNotFound, SpawnError or RegistryClosed; in each case
        nothing is registered.
        """
        camera = self.get_camera(camera_id)

        with self._admission_lock(camera_id):
            if self._closed:
                raise RegistryClosed("Server is shutting down")

            self.close_camera(camera_id, CloseReason.SUPERSEDED)

            log.info(f"Starting MJPEG stream for camera {camera_id}: {camera.name}")
            worker = self._worker_factory(
                self.command, self._worker_args(camera.source_url), f'camera-{camera_id}'
            )

            session = StreamSession(
                camera_id=camera_id,
                worker=worker,
                sink=sink,
                started_at=self._clock(),
            )
            relay = MultipartRelayWriter(sink, self.boundary, label=f"Camera {camera_id}")

            with self._lock:
                # shutdown() may have run while the worker was spawning
                if self._closed:
                    worker.kill()
                    sink.close()
                    raise RegistryClosed("Server is shutting down")
                self._sessions[session.session_id] = session
                self._arm_cleanup_timer(camera_id, session.session_id)

            worker.watch(
                on_stdout=partial(self._on_output, session, FrameDemuxer(), relay),
                on_stderr=DiagnosticScanner(camera_id),
                on_exit=partial(self._on_worker_exit, session),
                on_error=partial(self._on_worker_error, session),
            )
            return session

    def close_session(self, session_id: str, reason: CloseReason) -> bool:
        """Tear a session down. Returns False if it was already gone."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
            if session is None:
                return False
            session.closed_reason = reason

            entry = self._cleanup_timers.get(session.camera_id)
            if entry is not None and entry[0] == session_id:
                self._timers.cancel(entry[1])
                del self._cleanup_timers[session.camera_id]

        session.worker.kill()
        session.sink.close()

        uptime = session.uptime(self._clock())
        log.info(
            f"Closed stream for camera {session.camera_id} ({reason.value}, "
            f"{session.frame_count} frames, {uptime:.0f}s)"
        )
        return True

    def close_camera(self, camera_id: int, reason: CloseReason = CloseReason.CLEANUP) -> int:
        """Close every session for a camera and drop its cleanup timer"""
        with self._lock:
            session_ids = [s.session_id for s in self._sessions.values()
                           if s.camera_id == camera_id]
            entry = self._cleanup_timers.pop(camera_id, None)
            if entry is not None:
                self._timers.cancel(entry[1])

        closed = 0
        for session_id in session_ids:
            if self.close_session(session_id, reason):
                closed += 1
        if closed:
            log.info(f"Cleaned up {closed} existing stream(s) for camera {camera_id}")
        return closed

    def _arm_cleanup_timer(self, camera_id: int, session_id: str):
        entry = self._cleanup_timers.pop(camera_id, None)
        if entry is not None:
            self._timers.cancel(entry[1])
        handle = self._timers.schedule(self.idle_timeout, self._on_idle_timeout, session_id)
        self._cleanup_timers[camera_id] = (session_id, handle)

    # =========================================================================
    # Worker callbacks
    # =========================================================================

    def _on_output(self, session: StreamSession, demuxer: FrameDemuxer,
                   relay: MultipartRelayWriter, chunk: bytes):
        if session.closed:
            return
        for frame in demuxer.feed(chunk):
            try:
                session.frame_count = relay.write_frame(frame)
            except SinkWriteError as e:
                log.info(f"Error writing frame for camera {session.camera_id}: {e}")
                self.close_session(session.session_id, CloseReason.SINK_WRITE_ERROR)
                return

    def _on_worker_exit(self, session: StreamSession, code: int):
        log.info(
            f"FFmpeg process for camera {session.camera_id} closed with code {code} "
            f"({session.frame_count} frames processed)"
        )
        self.close_session(session.session_id, CloseReason.WORKER_EXIT)

    def _on_worker_error(self, session: StreamSession, error: BaseException):
        log.error(f"FFmpeg error for camera {session.camera_id}: {error}")
        self.close_session(session.session_id, CloseReason.WORKER_ERROR)

    def _on_idle_timeout(self, session_id: str):
        session = self.get_session(session_id)
        if session is not None:
            log.info(f"Cleaning up inactive stream for camera {session.camera_id}")
        self.close_session(session_id, CloseReason.SESSION_TIMEOUT)

    # =========================================================================
    # Sweeping and shutdown
    # =========================================================================

    def sweep(self) -> int:
        """Close sessions older than stale_after, leave the rest alone"""
        now = self._clock()
        with self._lock:
            stale = [s for s in self._sessions.values()
                     if now - s.started_at > self.stale_after]

        cleaned = 0
        for session in stale:
            log.info(f"Cleaning up old stream for camera {session.camera_id}")
            if self.close_session(session.session_id, CloseReason.STALE):
                cleaned += 1

        if cleaned:
            log.info(f"Periodic cleanup: removed {cleaned} old streams")
        return cleaned

    def start_sweeper(self):
        with self._lock:
            if self._closed:
                return
            self._timers.cancel(self._sweep_handle)
            self._sweep_handle = self._timers.schedule(self.sweep_interval, self._sweep_tick)

    def _sweep_tick(self):
        try:
            self.sweep()
        finally:
            self.start_sweeper()

    def shutdown(self) -> int:
        """Cancel all timers and close every session. Used once, at exit."""
        with self._lock:
            self._closed = True
            self._timers.cancel(self._sweep_handle)
            self._sweep_handle = None
            for _, handle in self._cleanup_timers.values():
                self._timers.cancel(handle)
            self._cleanup_timers.clear()
            session_ids = list(self._sessions)

        closed = sum(
            1 for session_id in session_ids
            if self.close_session(session_id, CloseReason.SHUTDOWN)
        )
        log.info(f"Shutdown closed {closed} stream(s)")
        return closed
