"""
Concurrent Runner - fan out tasks on threads and collect results with a deadline
"""
import threading
import queue
import time
from typing import Any, Callable, Dict, List, Optional, Tuple


class ConcurrentRunner:
    """
    Concurrent runner (thread based).

    Each task runs on its own daemon thread so a task that never returns
    cannot block the caller past the deadline or keep the interpreter alive.

    Usage:
        runner = ConcurrentRunner()
        results = runner.run_all([(read, ('/dev/sdb',), '/dev/sdb')], timeout=10)
        success, value = results['/dev/sdb']
    """

    def run_all(
        self,
        tasks: List[Tuple[Callable, tuple, str]],
        timeout: Optional[float] = None
    ) -> Dict[str, Tuple[bool, Any]]:
        """
        Run all tasks concurrently and wait for them until the deadline.

        Args:
            tasks: [(function, args tuple, unique task name), ...]
            timeout: Seconds to wait for all tasks, None means unlimited

        Returns:
            {task name: (success, result or exception)} for every task that
            finished in time; tasks still running at the deadline are absent
        """
        # A fresh queue per call: stragglers from an earlier call post into their own queue
        result_queue = queue.Queue()

        for func, args, task_name in tasks:
            thread = threading.Thread(
                target=self._run_task,
                args=(result_queue, func, args, task_name),
                name=f"runner-{task_name}",
                daemon=True
            )
            thread.start()

        deadline = None if timeout is None else time.monotonic() + timeout
        results: Dict[str, Tuple[bool, Any]] = {}

        while len(results) < len(tasks):
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
            try:
                task_name, success, result = result_queue.get(timeout=remaining)
            except queue.Empty:
                break
            results[task_name] = (success, result)

        return results

    @staticmethod
    def _run_task(result_queue: queue.Queue, func: Callable, args: tuple, task_name: str):
        """Run a single task"""
        try:
            result_queue.put((task_name, True, func(*args)))
        except Exception as e:
            result_queue.put((task_name, False, e))
