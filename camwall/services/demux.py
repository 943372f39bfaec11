"""
JPEG frame extraction from a worker's raw output.

ffmpeg's mjpeg muxer writes frames back to back; pipe reads split them at
arbitrary points. A frame whose end marker has not arrived yet is carried
into the next chunk, so frames straddling a read boundary are still emitted.
"""
from typing import Iterable, Iterator, List

from ..logs import get_logger

log = get_logger('relay')

SOI = b'\xff\xd8'  # Start of Image
EOI = b'\xff\xd9'  # End of Image

MAX_FRAME_BYTES = 4 * 1024 * 1024

DIAGNOSTIC_MARKERS = ('error', 'failed', 'Invalid')


class FrameDemuxer:
    """Splits a byte stream into complete SOI..EOI frames"""

    def __init__(self, max_frame_bytes: int = MAX_FRAME_BYTES):
        self.max_frame_bytes = max_frame_bytes
        self._buffer = bytearray()
        self.dropped = 0

    @property
    def pending(self) -> int:
        """Bytes held back waiting for the rest of a frame"""
        return len(self._buffer)

    def feed(self, chunk: bytes) -> List[bytes]:
        """Add a chunk and return every frame it completes, in order"""
        buffer = self._buffer
        buffer.extend(chunk)
        frames = []

        while True:
            start = buffer.find(SOI)
            if start == -1:
                # keep a trailing 0xFF in case the next chunk starts with 0xD8
                keep = 1 if buffer.endswith(b'\xff') else 0
                del buffer[:len(buffer) - keep]
                break

            if start:
                del buffer[:start]

            end = buffer.find(EOI, len(SOI))
            if end == -1:
                break

            frames.append(bytes(buffer[:end + len(EOI)]))
            del buffer[:end + len(EOI)]

        if len(buffer) > self.max_frame_bytes:
            log.warning(f"Discarding {len(buffer)} byte partial frame (no end marker)")
            buffer.clear()
            self.dropped += 1

        return frames

    def frames(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Lazily yield frames from an iterable of chunks"""
        for chunk in chunks:
            yield from self.feed(chunk)


def is_significant(text: str) -> bool:
    """True if a diagnostic line looks like a failure worth logging"""
    return any(marker in text for marker in DIAGNOSTIC_MARKERS)


class DiagnosticScanner:
    """Logs the worker's stderr output that mentions a failure"""

    def __init__(self, camera_id, logger=None):
        self.camera_id = camera_id
        self.matches = 0
        self._log = logger or get_logger('worker')

    def __call__(self, chunk: bytes):
        text = chunk.decode('utf-8', errors='replace')
        if is_significant(text):
            self.matches += 1
            self._log.warning(f"stderr (Camera {self.camera_id}): {text.strip()}")
