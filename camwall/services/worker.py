"""
Supervised ffmpeg worker processes for CamWall.
One worker transcodes one camera source into a JPEG stream on stdout.
"""
import signal
import subprocess
import threading
from typing import Callable, List, Optional, Sequence

from ..errors import SpawnError
from ..logs import get_logger

log = get_logger('worker')

READ_CHUNK_SIZE = 65536


def build_ffmpeg_args(source_url: str, width: int = 640, height: int = 480,
                      fps: int = 8, quality: int = 8) -> List[str]:
    """ffmpeg arguments that turn a camera source into MJPEG on stdout"""
    args = []
    if source_url.startswith(('rtsp://', 'rtsps://')):
        args += ['-rtsp_transport', 'tcp']
    args += [
        '-i', source_url,
        '-f', 'mjpeg',
        '-vf', f'scale={width}:{height}',
        '-r', str(fps),
        '-q:v', str(quality),
        '-avoid_negative_ts', 'make_zero',
        '-fflags', '+genpts',
        '-threads', '1',
        '-',
    ]
    return args


class ManagedWorker:
    """Handle for one running external process.

    Output is pumped by reader threads started from watch(). Exactly one
    terminal event fires per lifetime: on_exit(returncode) once stdout hits EOF
    and the process is reaped, or on_error(exc) if reading stdout fails.
    """

    def __init__(self, process: subprocess.Popen, name: str = ''):
        self._process = process
        self.name = name or str(process.pid)
        self._kill_lock = threading.Lock()
        self._killed = False
        self._terminal_lock = threading.Lock()
        self._terminated = False
        self._threads: List[threading.Thread] = []

    @classmethod
    def start(cls, command: str, args: Sequence[str], name: str = '') -> 'ManagedWorker':
        """Launch the process. Raises SpawnError if it cannot be started."""
        try:
            process = subprocess.Popen(
                [command, *args],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                bufsize=0,
            )
        except (OSError, ValueError) as e:
            raise SpawnError(f"Failed to launch {command}: {e}") from e

        worker = cls(process, name)
        log.debug(f"Started {command} for {worker.name} (pid {process.pid})")
        return worker

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def stdout(self):
        return self._process.stdout

    @property
    def stderr(self):
        return self._process.stderr

    @property
    def returncode(self) -> Optional[int]:
        return self._process.poll()

    @property
    def alive(self) -> bool:
        return self._process.poll() is None

    @property
    def killed(self) -> bool:
        return self._killed

    def kill(self, sig: int = signal.SIGTERM) -> bool:
        """Signal the process. No-op if it already exited or was already signalled."""
        with self._kill_lock:
            if self._killed or self._process.poll() is not None:
                return False
            self._killed = True
            try:
                self._process.send_signal(sig)
            except ProcessLookupError:
                return False
        log.debug(f"Sent signal {sig} to {self.name} (pid {self.pid})")
        return True

    def watch(self, on_stdout: Callable[[bytes], None],
              on_stderr: Optional[Callable[[bytes], None]] = None,
              on_exit: Optional[Callable[[int], None]] = None,
              on_error: Optional[Callable[[BaseException], None]] = None,
              chunk_size: int = READ_CHUNK_SIZE):
        """Start the reader threads that deliver output and the terminal event"""
        stdout_thread = threading.Thread(
            target=self._pump_stdout,
            args=(on_stdout, on_exit, on_error, chunk_size),
            name=f'worker-{self.name}-stdout',
            daemon=True,
        )
        self._threads.append(stdout_thread)

        if self._process.stderr is not None:
            stderr_thread = threading.Thread(
                target=self._pump_stderr,
                args=(on_stderr, chunk_size),
                name=f'worker-{self.name}-stderr',
                daemon=True,
            )
            self._threads.append(stderr_thread)

        for thread in self._threads:
            thread.start()

    def join(self, timeout: Optional[float] = None):
        for thread in self._threads:
            thread.join(timeout)

    def _pump_stdout(self, on_stdout, on_exit, on_error, chunk_size):
        stream = self._process.stdout
        try:
            while True:
                chunk = stream.read(chunk_size)
                if not chunk:
                    break
                on_stdout(chunk)
        except Exception as e:
            log.error(f"Output reader for {self.name} failed: {e}")
            self.kill()
            self._reap()
            self._terminal(on_error, e)
            return
        finally:
            stream.close()

        returncode = self._process.wait()
        self._terminal(on_exit, returncode)

    def _reap(self, timeout: float = 5.0):
        try:
            self._process.wait(timeout)
        except subprocess.TimeoutExpired:
            log.warning(f"{self.name} ignored SIGTERM, killing")
            self._process.kill()
            self._process.wait()

    def _pump_stderr(self, on_stderr, chunk_size):
        stream = self._process.stderr
        try:
            while True:
                chunk = stream.read(chunk_size)
                if not chunk:
                    break
                if on_stderr is not None:
                    on_stderr(chunk)
        except (OSError, ValueError) as e:
            log.debug(f"Diagnostic reader for {self.name} stopped: {e}")
        finally:
            stream.close()

    def _terminal(self, callback, value):
        with self._terminal_lock:
            if self._terminated:
                return
            self._terminated = True
        if callback is not None:
            callback(value)
