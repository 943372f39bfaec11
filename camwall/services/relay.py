"""
Multipart MJPEG relay: frames in, multipart/x-mixed-replace body out.
"""
import threading
from collections import deque
from typing import Iterator, Optional

from ..errors import SinkWriteError
from ..logs import get_logger

log = get_logger('relay')

PROGRESS_EVERY = 80  # about every 10 seconds at 8fps


def stream_headers(boundary: str) -> dict:
    """Response headers declared before the first frame"""
    return {
        'Content-Type': f'multipart/x-mixed-replace; boundary=--{boundary}',
        'Cache-Control': 'no-cache',
        'Connection': 'close',
        'Pragma': 'no-cache',
        'Access-Control-Allow-Origin': '*',
        'Access-Control-Allow-Methods': 'GET',
        'Access-Control-Allow-Headers': 'Content-Type',
    }


def encode_part(frame: bytes, boundary: str) -> bytes:
    """One multipart part: boundary, part headers, JPEG bytes, trailing CRLF"""
    header = (
        f'\r\n--{boundary}\r\n'
        f'Content-Type: image/jpeg\r\n'
        f'Content-Length: {len(frame)}\r\n\r\n'
    ).encode('ascii')
    return header + frame + b'\r\n'


class ResponseSink:
    """One-frame hand-off between a worker's reader thread and a response body.

    write() blocks until the previous frame has been taken by the response,
    at most write_timeout seconds. close() ends the body once any pending
    frame has been sent.
    """

    def __init__(self, write_timeout: float = 10.0):
        self.write_timeout = write_timeout
        self._cond = threading.Condition()
        self._pending = deque()
        self._closed = False

    @property
    def writable(self) -> bool:
        return not self._closed

    def write(self, data: bytes):
        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._closed or not self._pending,
                timeout=self.write_timeout,
            )
            if self._closed:
                raise SinkWriteError("Response is closed")
            if not ready:
                raise SinkWriteError(
                    f"Client did not take a frame within {self.write_timeout}s"
                )
            self._pending.append(data)
            self._cond.notify_all()

    def close(self):
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def stream(self) -> Iterator[bytes]:
        """Response body generator"""
        try:
            while True:
                with self._cond:
                    # a departed client only shows up when the next frame is written
                    self._cond.wait_for(lambda: self._pending or self._closed)
                    if not self._pending:
                        return
                    data = self._pending.popleft()
                    self._cond.notify_all()
                yield data
        finally:
            with self._cond:
                self._closed = True
                self._pending.clear()
                self._cond.notify_all()


class MultipartRelayWriter:
    """Wraps frames in multipart parts and writes them to a sink, in order"""

    def __init__(self, sink, boundary: str, label: Optional[str] = None):
        self.sink = sink
        self.boundary = boundary
        self.label = label
        self.frame_count = 0

    def write_frame(self, frame: bytes) -> int:
        """Write one frame. Raises SinkWriteError if the sink is gone."""
        if not self.sink.writable:
            raise SinkWriteError("Response is no longer writable")

        self.sink.write(encode_part(frame, self.boundary))
        self.frame_count += 1

        if self.label and self.frame_count % PROGRESS_EVERY == 0:
            log.info(f"{self.label}: {self.frame_count} frames processed")

        return self.frame_count
