"""
單執行緒 loop 上的可取消重複工作

所有回呼在 loop 執行緒上依序執行完畢，計時狀態不需要鎖。
其他執行緒只能透過 ``post`` 把工作交給 loop；網路請求則以 ``run_serial``
交給背景執行緒，完成後的回呼再回到 loop 執行。
"""

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from .utils import now_ms


logger = logging.getLogger(__name__)

DoneCallback = Callable[[Future], Any]


class ScheduledTask:
    """重複回呼的 handle"""

    def __init__(self, interval: float, callback: Callable[[], None], next_run: float):
        self.interval = interval
        self.callback = callback
        self.next_run = next_run
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class Scheduler(ABC):
    """真實 loop 與測試用手動時鐘的共同介面"""

    def __init__(self):
        self.tasks: list[ScheduledTask] = []

    @abstractmethod
    def monotonic(self) -> float:
        """排程用的單調時間 (秒)"""

    @abstractmethod
    def now_ms(self) -> int:
        """牆上時間 (epoch 毫秒)"""

    @abstractmethod
    def post(self, callback: Callable[[], None]):
        """把 callback 排入 loop 執行"""

    @abstractmethod
    def run_serial(self, key: str, fn: Callable[..., Any], *args,
                   on_done: Optional[DoneCallback] = None) -> Future:
        """
        在 loop 之外執行 ``fn(*args)``

        同一個 key 的工作依提交順序執行；``on_done(future)`` 在 loop 上執行。
        """

    def close(self):
        """等待背景工作結束"""

    def call_every(self, interval: float, callback: Callable[[], None]) -> ScheduledTask:
        task = ScheduledTask(interval, callback, self.monotonic() + interval)
        self.tasks.append(task)
        return task

    def _run_callback(self, callback: Callable[[], None]):
        try:
            callback()
        except Exception:
            logger.exception("Scheduled callback failed")

    def _run_due(self, now: float):
        self.tasks = [t for t in self.tasks if not t.cancelled]
        for task in sorted(self.tasks, key=lambda t: t.next_run):
            if task.cancelled or task.next_run > now:
                continue
            task.next_run += task.interval
            if task.next_run <= now:
                # 落後太多時不補跑，從現在重新計算
                task.next_run = now + task.interval
            self._run_callback(task.callback)

    def _next_deadline(self) -> Optional[float]:
        pending = [t.next_run for t in self.tasks if not t.cancelled]
        return min(pending) if pending else None


class _Completion:
    """背景工作完成後回到 loop 執行的回呼"""

    def __init__(self, callback: DoneCallback, future: Future):
        self.callback = callback
        self.future = future

    def __call__(self):
        self.callback(self.future)


def _run_after(previous: Optional[Future], fn: Callable[..., Any], args: tuple) -> Any:
    if previous is not None:
        wait([previous])
    return fn(*args)


class LoopScheduler(Scheduler):
    """
    牆上時鐘 loop，由呼叫 ``run()`` 的執行緒驅動

    背景工作交給 ThreadPoolExecutor。同一 key 的工作會等前一個結束才執行；
    等待的一定是更早提交的工作，executor 依 FIFO 取工作，所以不會互相卡死。
    """

    def __init__(self, max_workers: int = 4):
        super().__init__()
        self._posted: "queue.Queue[Callable[[], None]]" = queue.Queue()
        self._running = False
        self._executor = ThreadPoolExecutor(max_workers=max_workers,
                                            thread_name_prefix="jira-worklog")
        self._lanes: dict[str, Future] = {}
        self._lanes_lock = threading.Lock()

    def monotonic(self) -> float:
        return time.monotonic()

    def now_ms(self) -> int:
        return now_ms()

    def post(self, callback: Callable[[], None]):
        """Thread-safe：排入 loop 執行緒"""
        self._posted.put(callback)

    def run_serial(self, key: str, fn: Callable[..., Any], *args,
                   on_done: Optional[DoneCallback] = None) -> Future:
        with self._lanes_lock:
            previous = self._lanes.get(key)
            future = self._executor.submit(_run_after, previous, fn, args)
            self._lanes[key] = future
        future.add_done_callback(lambda f: self._release(key, f))
        if on_done:
            future.add_done_callback(lambda f: self.post(_Completion(on_done, f)))
        return future

    def _release(self, key: str, future: Future):
        with self._lanes_lock:
            if self._lanes.get(key) is future:
                del self._lanes[key]

    def stop(self):
        self.post(self._halt)

    def _halt(self):
        self._running = False

    def run(self):
        self._running = True
        while self._running:
            deadline = self._next_deadline()
            timeout = None if deadline is None else max(0.0, deadline - self.monotonic())
            try:
                callback = self._posted.get(timeout=timeout)
            except queue.Empty:
                callback = None
            if callback is not None:
                self._run_callback(callback)
            self._run_due(self.monotonic())

    def close(self):
        """等背景工作做完，並執行它們的完成回呼；停止後收到的指令直接丟棄"""
        self._executor.shutdown(wait=True)
        while True:
            try:
                callback = self._posted.get_nowait()
            except queue.Empty:
                return
            if isinstance(callback, _Completion):
                self._run_callback(callback)


class ManualScheduler(Scheduler):
    """測試用的確定性時鐘：時間只透過 ``advance`` 前進，背景工作立即執行"""

    def __init__(self, start_ms: int = 1_700_000_000_000):
        super().__init__()
        self._now = start_ms / 1000

    def monotonic(self) -> float:
        return self._now

    def now_ms(self) -> int:
        return int(round(self._now * 1000))

    def post(self, callback: Callable[[], None]):
        self._run_callback(callback)

    def run_serial(self, key: str, fn: Callable[..., Any], *args,
                   on_done: Optional[DoneCallback] = None) -> Future:
        future: Future = Future()
        try:
            future.set_result(fn(*args))
        except Exception as e:
            future.set_exception(e)
        if on_done:
            self._run_callback(_Completion(on_done, future))
        return future

    def advance(self, seconds: float):
        """時間前進，途中到期的工作依序觸發"""
        target = self._now + seconds
        while True:
            deadline = self._next_deadline()
            if deadline is None or deadline > target:
                break
            self._now = deadline
            self._run_due(deadline)
        self._now = target
