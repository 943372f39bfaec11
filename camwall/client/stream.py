"""
Streaming HTTP client for multipart MJPEG endpoints.

Plays the part of a browser <img> pointed at a stream: it reports each
decodable frame, reports errors when the stream fails or ends, and reports an
abort when it was disconnected on purpose.
"""
from __future__ import annotations

import threading
from typing import Callable, Optional

import cv2
import httpx
import numpy as np

from ..errors import StreamError
from ..logs import get_logger
from ..services.demux import FrameDemuxer

log = get_logger('client')


def is_mjpeg_content_type(content_type: str | None) -> bool:
    if not content_type:
        return False
    return "multipart/x-mixed-replace" in content_type.lower()


def decode_jpeg(frame: bytes) -> Optional[np.ndarray]:
    """Decoded image, or None if the bytes are not a valid JPEG"""
    arr = np.frombuffer(frame, dtype=np.uint8)
    return cv2.imdecode(arr, cv2.IMREAD_COLOR)


class HttpStreamClient:
    """One stream at a time, read on a background thread"""

    def __init__(self, timeout: float = 10.0, chunk_size: int = 8192,
                 transport: httpx.BaseTransport | None = None,
                 validate_frames: bool = True) -> None:
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.validate_frames = validate_frames
        self._transport = transport
        self._lock = threading.Lock()
        self._stop: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None
        self._response: Optional[httpx.Response] = None
        self.frames_received = 0

    @property
    def active(self) -> bool:
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def open(self, url: str, on_frame_ready: Callable, on_error: Callable,
             on_abort: Callable) -> None:
        """Start reading url, replacing any stream already open"""
        self.disconnect()

        stop = threading.Event()
        thread = threading.Thread(
            target=self._run,
            args=(url, stop, on_frame_ready, on_error, on_abort),
            daemon=True,
        )
        with self._lock:
            self._stop = stop
            self._thread = thread
        thread.start()

    def disconnect(self) -> None:
        """Stop the current stream and close its connection"""
        with self._lock:
            stop, self._stop = self._stop, None
            response, self._response = self._response, None
            if stop is not None:
                stop.set()
        if response is not None:
            response.close()

    def join(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            thread = self._thread
        if thread is not None:
            thread.join(timeout)

    def _run(self, url, stop, on_frame_ready, on_error, on_abort):
        try:
            self._read(url, stop, on_frame_ready)
        except (httpx.HTTPError, httpx.StreamError, StreamError) as e:
            if stop.is_set():
                on_abort()
            else:
                log.debug(f"Stream {url} failed: {e}")
                on_error(e)
            return

        if stop.is_set():
            on_abort()
        else:
            on_error(StreamError("Stream ended"))

    def _read(self, url, stop, on_frame_ready):
        with httpx.Client(timeout=self.timeout, transport=self._transport,
                          follow_redirects=True) as client:
            with client.stream("GET", url) as response:
                with self._lock:
                    if stop.is_set():
                        return
                    self._response = response
                try:
                    self._consume(response, stop, on_frame_ready)
                finally:
                    with self._lock:
                        if self._response is response:
                            self._response = None

    def _consume(self, response, stop, on_frame_ready):
        if response.status_code != 200:
            raise StreamError(f"Stream returned HTTP {response.status_code}")

        content_type = response.headers.get("content-type", "")
        if not is_mjpeg_content_type(content_type):
            raise StreamError(f"Not an MJPEG stream: {content_type!r}")

        demuxer = FrameDemuxer()
        for chunk in response.iter_bytes(self.chunk_size):
            if stop.is_set():
                return
            for frame in demuxer.feed(chunk):
                if stop.is_set():
                    return
                if self.validate_frames and decode_jpeg(frame) is None:
                    log.debug(f"Skipping undecodable frame ({len(frame)} bytes)")
                    continue
                self.frames_received += 1
                on_frame_ready(frame)
