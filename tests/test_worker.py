"""
Tests for ManagedWorker against real subprocesses.
"""
import sys
import threading
import unittest

from camwall.errors import SpawnError
from camwall.services.worker import ManagedWorker, build_ffmpeg_args

POSIX = sys.platform != 'win32'


class Events:
    """Collects worker callbacks"""

    def __init__(self):
        self.stdout = []
        self.stderr = []
        self.exits = []
        self.errors = []
        self.done = threading.Event()

    def on_stdout(self, chunk):
        self.stdout.append(chunk)

    def on_stderr(self, chunk):
        self.stderr.append(chunk)

    def on_exit(self, code):
        self.exits.append(code)
        self.done.set()

    def on_error(self, error):
        self.errors.append(error)
        self.done.set()

    def watch(self, worker):
        worker.watch(self.on_stdout, self.on_stderr, self.on_exit, self.on_error)


def python_worker(code):
    return ManagedWorker.start(sys.executable, ['-c', code], name='test')


class TestBuildFfmpegArgs(unittest.TestCase):
    """Test cases for the ffmpeg command line."""

    def test_rtsp_source_uses_tcp(self):
        args = build_ffmpeg_args('rtsp://cam1/stream')
        self.assertEqual(args[:4], ['-rtsp_transport', 'tcp', '-i', 'rtsp://cam1/stream'])
        self.assertEqual(args[-1], '-')
        self.assertIn('scale=640:480', args)
        self.assertEqual(args[args.index('-f') + 1], 'mjpeg')
        self.assertEqual(args[args.index('-r') + 1], '8')
        self.assertEqual(args[args.index('-q:v') + 1], '8')

    def test_non_rtsp_source(self):
        args = build_ffmpeg_args('http://cam2/video.mjpg', width=320, height=240, fps=5, quality=4)
        self.assertNotIn('-rtsp_transport', args)
        self.assertEqual(args[:2], ['-i', 'http://cam2/video.mjpg'])
        self.assertIn('scale=320:240', args)
        self.assertEqual(args[args.index('-r') + 1], '5')


class TestManagedWorker(unittest.TestCase):
    """Test cases for ManagedWorker."""

    def test_missing_executable_raises_spawn_error(self):
        with self.assertRaises(SpawnError):
            ManagedWorker.start('/nonexistent/camwall-ffmpeg', ['-i', 'x'])

    def test_output_and_single_exit_event(self):
        worker = python_worker(
            "import sys\n"
            "sys.stdout.buffer.write(b'\\xff\\xd8abc\\xff\\xd9')\n"
            "sys.stdout.flush()\n"
            "sys.stderr.write('Invalid data found')\n"
        )
        events = Events()
        events.watch(worker)

        self.assertTrue(events.done.wait(10))
        worker.join(5)

        self.assertEqual(b''.join(events.stdout), b'\xff\xd8abc\xff\xd9')
        self.assertEqual(b''.join(events.stderr), b'Invalid data found')
        self.assertEqual(events.exits, [0])
        self.assertEqual(events.errors, [])
        self.assertFalse(worker.alive)

    def test_nonzero_exit_code_is_reported(self):
        worker = python_worker("import sys; sys.exit(3)")
        events = Events()
        events.watch(worker)

        self.assertTrue(events.done.wait(10))
        self.assertEqual(events.exits, [3])

    @unittest.skipUnless(POSIX, "signals")
    def test_kill_is_idempotent(self):
        worker = python_worker("import time; time.sleep(30)")
        events = Events()
        events.watch(worker)

        self.assertTrue(worker.kill())
        self.assertFalse(worker.kill())
        self.assertTrue(events.done.wait(10))
        worker.join(5)

        self.assertEqual(len(events.exits), 1)
        self.assertNotEqual(events.exits[0], 0)
        self.assertTrue(worker.killed)

    def test_kill_after_exit_is_noop(self):
        worker = python_worker("pass")
        events = Events()
        events.watch(worker)

        self.assertTrue(events.done.wait(10))
        worker.join(5)
        self.assertFalse(worker.kill())

    @unittest.skipUnless(POSIX, "signals")
    def test_callback_failure_becomes_error_event(self):
        worker = python_worker(
            "import sys, time\n"
            "sys.stdout.buffer.write(b'data')\n"
            "sys.stdout.flush()\n"
            "time.sleep(30)\n"
        )
        events = Events()

        def explode(chunk):
            raise RuntimeError("downstream broke")

        worker.watch(explode, on_exit=events.on_exit, on_error=events.on_error)

        self.assertTrue(events.done.wait(10))
        worker.join(5)

        self.assertEqual(len(events.errors), 1)
        self.assertIsInstance(events.errors[0], RuntimeError)
        self.assertEqual(events.exits, [])
        self.assertFalse(worker.alive)


if __name__ == '__main__':
    unittest.main()
