"""
Test doubles shared by the CamWall test suite.
"""
import signal
import threading
import time

import cv2
import numpy as np

from camwall.errors import SinkWriteError, SpawnError


def make_jpeg(width=16, height=16, value=0):
    """A small real JPEG"""
    image = np.full((height, width, 3), value, dtype=np.uint8)
    ok, buffer = cv2.imencode('.jpg', image)
    assert ok
    return buffer.tobytes()


def fake_frame(payload=b'frame'):
    """SOI + payload + EOI, payload must not contain markers"""
    return b'\xff\xd8' + payload + b'\xff\xd9'


def wait_until(predicate, timeout=2.0, interval=0.01):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


class ManualHandle:
    def __init__(self, due, delay, callback, args):
        self.due = due
        self.delay = delay
        self.callback = callback
        self.args = args
        self.cancelled = False
        self.fired = False

    @property
    def active(self):
        return not (self.cancelled or self.fired)

    def cancel(self):
        self.cancelled = True


class ManualTimers:
    """TimerService whose clock only moves when advance() is called"""

    def __init__(self, start=0.0):
        self.now = start
        self.handles = []

    def clock(self):
        return self.now

    def schedule(self, delay, callback, *args):
        handle = ManualHandle(self.now + max(0.0, delay), delay, callback, args)
        self.handles.append(handle)
        return handle

    def cancel(self, handle):
        if handle is not None:
            handle.cancel()

    def active(self):
        return [h for h in self.handles if h.active]

    def advance(self, seconds):
        target = self.now + seconds
        while True:
            due = [h for h in self.handles if h.active and h.due <= target]
            if not due:
                break
            handle = min(due, key=lambda h: h.due)
            self.now = handle.due
            handle.fired = True
            handle.callback(*handle.args)
        self.now = target


class ListSink:
    """Sink that records every write"""

    def __init__(self):
        self.writes = []
        self.closed = False

    @property
    def writable(self):
        return not self.closed

    def write(self, data):
        if self.closed:
            raise SinkWriteError("closed")
        self.writes.append(data)

    def close(self):
        self.closed = True


class FakeWorker:
    """Worker whose output and exit are driven by the test"""

    def __init__(self, command, args, name=''):
        self.command = command
        self.args = list(args)
        self.name = name
        self.kill_signals = []
        self.exited = False
        self.on_stdout = None
        self.on_stderr = None
        self.on_exit = None
        self.on_error = None

    @property
    def alive(self):
        return not self.exited and not self.kill_signals

    def kill(self, sig=signal.SIGTERM):
        if not self.alive:
            return False
        self.kill_signals.append(sig)
        return True

    def watch(self, on_stdout, on_stderr=None, on_exit=None, on_error=None):
        self.on_stdout = on_stdout
        self.on_stderr = on_stderr
        self.on_exit = on_exit
        self.on_error = on_error

    def emit(self, chunk):
        self.on_stdout(chunk)

    def exit(self, code=0):
        self.exited = True
        self.on_exit(code)

    def fail(self, error):
        self.exited = True
        self.on_error(error)


class ThreadedFakeWorker(FakeWorker):
    """Emits its chunks from a thread, then runs until killed (or exits)"""

    chunks = ()
    exit_after_output = False

    def __init__(self, command, args, name=''):
        super().__init__(command, args, name)
        self._killed = threading.Event()
        self.thread = None

    def kill(self, sig=signal.SIGTERM):
        killed = super().kill(sig)
        self._killed.set()
        return killed

    def watch(self, on_stdout, on_stderr=None, on_exit=None, on_error=None):
        super().watch(on_stdout, on_stderr, on_exit, on_error)
        self.thread = threading.Thread(target=self._run, daemon=True)
        self.thread.start()

    def _run(self):
        for chunk in self.chunks:
            if self._killed.is_set():
                break
            self.on_stdout(chunk)
        if not self.exit_after_output:
            self._killed.wait(5)
        self.exited = True
        self.on_exit(0 if self.exit_after_output else -signal.SIGTERM)


class WorkerFactory:
    """Records every worker the registry asks for"""

    def __init__(self, worker_class=FakeWorker, fail=False):
        self.worker_class = worker_class
        self.fail = fail
        self.workers = []

    def __call__(self, command, args, name=''):
        if self.fail:
            raise SpawnError(f"Failed to launch {command}: not found")
        worker = self.worker_class(command, args, name)
        self.workers.append(worker)
        return worker

    def alive(self):
        return [w for w in self.workers if w.alive]


class FakeStreamClient:
    """Stream client driven by the test"""

    def __init__(self, camera_id=None):
        self.camera_id = camera_id
        self.urls = []
        self.handlers = None
        self.disconnects = 0

    def open(self, url, on_frame_ready, on_error, on_abort):
        self.urls.append(url)
        self.handlers = (on_frame_ready, on_error, on_abort)

    def disconnect(self):
        self.disconnects += 1

    def frame(self, data=b'\xff\xd8\xff\xd9'):
        self.handlers[0](data)

    def fail(self, error=None):
        self.handlers[1](error)

    def abort(self):
        self.handlers[2]()


class RecordingDisplay:
    def __init__(self):
        self.shown = []
        self.cleared = []

    def show(self, camera_id, state, message=''):
        self.shown.append((camera_id, state, message))

    def clear_source(self, camera_id):
        self.cleared.append(camera_id)

    def last(self, camera_id):
        for entry in reversed(self.shown):
            if entry[0] == camera_id:
                return entry
        return None
