"""Tests for the bounded batch worker pool."""

import os
import shutil
import tempfile
import threading
import time
import unittest

from MatScope.batch import BatchFailure, BatchRunner
from MatScope.core import AnalysisCancelledError, Texture, TextureSet
from MatScope.validation import Rule, Severity, validate_batch
from MatScope.validation.conditions import Script
from helpers import write_script


class TestBatchRunner(unittest.TestCase):
    def test_results_in_input_order(self):
        def slow_inverse(n):
            time.sleep(0.01 * (5 - n))
            return n * 10

        result = BatchRunner(max_workers=5).map(slow_inverse, range(5))
        self.assertTrue(result.ok)
        self.assertEqual(result.results, [0, 10, 20, 30, 40])

    def test_sequential_when_one_worker(self):
        seen = []
        result = BatchRunner(max_workers=1).map(
            lambda x: seen.append(threading.current_thread().name) or x, [1, 2, 3],
        )
        self.assertEqual(result.results, [1, 2, 3])
        self.assertEqual(set(seen), {threading.current_thread().name})

    def test_failures_recorded_per_item(self):
        def maybe_fail(n):
            if n % 2:
                raise ValueError(f"odd {n}")
            return n

        for workers in (1, 4):
            with self.subTest(workers=workers):
                result = BatchRunner(max_workers=workers).map(
                    maybe_fail, [0, 1, 2, 3], keys=["a", "b", "c", "d"],
                )
                self.assertFalse(result.ok)
                self.assertEqual(result.results, [0, None, 2, None])
                self.assertEqual(result.successful(), [0, 2])
                self.assertEqual(
                    result.failures,
                    [
                        BatchFailure("b", "odd 1", "ValueError", 1),
                        BatchFailure("d", "odd 3", "ValueError", 3),
                    ],
                )
                self.assertEqual(result.failures[0].to_dict(),
                                 {"key": "b", "error": "odd 1", "error_type": "ValueError"})

    def test_keys_length_checked(self):
        with self.assertRaises(ValueError):
            BatchRunner(max_workers=2).map(lambda x: x, [1, 2], keys=["only"])

    def test_empty_items(self):
        result = BatchRunner(max_workers=4).map(lambda x: x, [])
        self.assertEqual(result.results, [])
        self.assertTrue(result.ok)

    def test_cancel_before_start(self):
        runner = BatchRunner(max_workers=2)
        runner.cancel()
        self.assertTrue(runner.cancelled)
        self.assertTrue(runner.scripts.cancelled)
        with self.assertRaises(AnalysisCancelledError):
            runner.map(lambda x: x, [1, 2, 3])

    def test_cancel_while_running(self):
        runner = BatchRunner(max_workers=2)
        started = threading.Event()

        def work(n):
            started.set()
            time.sleep(0.3)
            return n

        timer = threading.Thread(target=lambda: started.wait(5) and runner.cancel())
        timer.start()
        start = time.monotonic()
        try:
            with self.assertRaises(AnalysisCancelledError):
                runner.map(work, range(50))
        finally:
            timer.join()
        self.assertLess(time.monotonic() - start, 5.0)

    def test_shared_cancel_event(self):
        event = threading.Event()
        runner = BatchRunner(max_workers=1, cancel_event=event)
        event.set()
        with self.assertRaises(AnalysisCancelledError):
            runner.map(lambda x: x, [1])

    def test_interrupt_kills_scripts(self):
        def interrupt(_):
            raise KeyboardInterrupt

        for workers in (1, 2):
            with self.subTest(workers=workers):
                runner = BatchRunner(max_workers=workers)
                with self.assertRaises(KeyboardInterrupt):
                    runner.map(interrupt, [1, 2])
                self.assertTrue(runner.scripts.cancelled)


SLEEPER = """
    import os, sys, time
    sys.stdin.read()
    open(os.path.join("pids", str(os.getpid())), "w").close()
    time.sleep(30)
"""


@unittest.skipIf(os.name == "nt", "liveness check uses POSIX signal 0")
class TestScriptCancellation(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()
        self.pid_dir = os.path.join(self.tmp, "pids")
        os.makedirs(self.pid_dir)
        argv = write_script(self.tmp, "sleeper.py", SLEEPER)
        self.rule = Rule(
            "sleeper", "sleeps", Severity.MAJOR,
            Script(command=argv[0], args=tuple(argv[1:]), timeout=60),
            base_dir=self.tmp,
        )
        self.materials = [
            TextureSet(f"m{i}", {"albedo": Texture.solid(8, 8)}) for i in range(2)
        ]

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def _pids(self):
        return [int(name) for name in os.listdir(self.pid_dir)]

    def _set_once_started(self, event):
        deadline = time.monotonic() + 10
        while not self._pids() and time.monotonic() < deadline:
            time.sleep(0.05)
        event.set()

    def _assert_exited(self, pids):
        alive = set(pids)
        deadline = time.monotonic() + 5
        while alive and time.monotonic() < deadline:
            for pid in list(alive):
                try:
                    os.kill(pid, 0)
                except ProcessLookupError:
                    alive.discard(pid)
            time.sleep(0.05)
        self.assertEqual(alive, set())

    def test_external_event_kills_children(self):
        for workers in (2, 1):
            with self.subTest(workers=workers):
                for name in os.listdir(self.pid_dir):
                    os.remove(os.path.join(self.pid_dir, name))
                event = threading.Event()
                setter = threading.Thread(target=self._set_once_started, args=(event,))
                setter.start()
                start = time.monotonic()
                try:
                    with self.assertRaises(AnalysisCancelledError):
                        validate_batch(
                            self.materials, [self.rule],
                            runner=BatchRunner(max_workers=workers, cancel_event=event),
                        )
                finally:
                    setter.join()
                self.assertLess(time.monotonic() - start, 15)
                pids = self._pids()
                self.assertTrue(pids)
                self._assert_exited(pids)


if __name__ == "__main__":
    unittest.main(verbosity=2)
