"""Tests for scheduler module."""

import threading
import time
import pytest
from unittest.mock import MagicMock

from jira_worklog.branch import BranchChange
from jira_worklog.scheduler import LoopScheduler, ManualScheduler, Scheduler
from jira_worklog.timer import TimerStatus, WorklogTimer
from jira_worklog.worklog import WorklogLoader, WorklogSubmitter


class TestSchedulerInterface:
    """Tests for the abstract scheduler."""

    def test_base_cannot_be_instantiated(self):
        """Test the interface itself is abstract."""
        with pytest.raises(TypeError):
            Scheduler()

    def test_incomplete_subclass_fails_early(self):
        """Test a subclass missing run_serial fails at construction."""

        class NoBackground(Scheduler):
            def monotonic(self):
                return 0.0

            def now_ms(self):
                return 0

            def post(self, callback):
                callback()

        with pytest.raises(TypeError):
            NoBackground()


class TestManualScheduler:
    """Tests for ManualScheduler."""

    def test_advance_fires_due_tasks(self, scheduler):
        """Test repeating tasks fire once per interval."""
        calls = []
        scheduler.call_every(1.5, lambda: calls.append(scheduler.monotonic()))

        scheduler.advance(4)

        assert len(calls) == 2

    def test_cancelled_task_stops_firing(self, scheduler):
        """Test cancel removes the task."""
        calls = []
        task = scheduler.call_every(1, lambda: calls.append(1))
        scheduler.advance(2)
        task.cancel()
        scheduler.advance(5)

        assert len(calls) == 2
        assert scheduler._next_deadline() is None

    def test_run_serial_runs_inline(self, scheduler):
        """Test background work completes before run_serial returns."""
        done = MagicMock()

        future = scheduler.run_serial("PROJ-1", lambda a, b: a + b, 2, 3, on_done=done)

        assert future.result() == 5
        done.assert_called_once_with(future)

    def test_run_serial_captures_errors(self, scheduler):
        """Test exceptions land in the future instead of escaping."""
        def fail():
            raise ValueError("boom")

        future = scheduler.run_serial("PROJ-1", fail)

        assert isinstance(future.exception(), ValueError)


class TestLoopScheduler:
    """Tests for LoopScheduler."""

    def test_same_key_runs_in_order(self):
        """Test work for one key runs one after another."""
        scheduler = LoopScheduler()
        events = []

        def slow_submit():
            time.sleep(0.2)
            events.append("submit")

        scheduler.run_serial("PROJ-1", slow_submit)
        last = scheduler.run_serial("PROJ-1", lambda: events.append("load"))
        last.result(timeout=5)
        scheduler.close()

        assert events == ["submit", "load"]

    def test_other_keys_do_not_wait(self):
        """Test a blocked key does not hold back other keys."""
        scheduler = LoopScheduler()
        gate = threading.Event()

        blocked = scheduler.run_serial("PROJ-1", gate.wait, 5)
        other = scheduler.run_serial("PROJ-2", lambda: "done")

        assert other.result(timeout=2) == "done"
        assert not blocked.done()
        gate.set()
        scheduler.close()

    def test_on_done_runs_on_loop_thread(self):
        """Test completion callbacks come back to the loop."""
        scheduler = LoopScheduler()
        seen = {}

        def on_done(future):
            seen["thread"] = threading.current_thread()
            seen["result"] = future.result()
            scheduler.stop()

        scheduler.run_serial("PROJ-1", lambda: 42, on_done=on_done)
        scheduler.run()
        scheduler.close()

        assert seen == {"thread": threading.current_thread(), "result": 42}

    def test_close_waits_and_runs_completions(self):
        """Test close finishes background work but drops queued commands."""
        scheduler = LoopScheduler()
        results = []

        def slow():
            time.sleep(0.1)
            return 7

        scheduler.run_serial("PROJ-1", slow, on_done=lambda f: results.append(f.result()))
        scheduler.post(lambda: results.append("command"))
        scheduler.close()

        assert results == [7]

    def test_slow_submit_does_not_stall_timers(self, context, ui, sample_config):
        """Test a branch switch with a slow worklog POST keeps every timer on time."""
        scheduler = LoopScheduler()
        client = MagicMock()

        def send(path, method="GET", body=None):
            if method == "POST":
                time.sleep(1.0)
                return {"id": "1"}
            return {"worklogs": []}

        client.send.side_effect = send
        submitter = WorklogSubmitter(client, lambda: sample_config, ui, scheduler)
        loader = WorklogLoader(client, context, ui, scheduler)
        timer = WorklogTimer(context, scheduler, submitter, loader, ui)

        beats = []
        switch = {}

        def begin():
            timer.set_target("feature/P-1", "P-1")
            timer.start()

        def heartbeat():
            beats.append(time.monotonic())
            if len(beats) == 3:
                switch["at"] = scheduler.now_ms()
                timer.on_branch_change(BranchChange("feature/P-1", "feature/P-2", "P-1", "P-2"))
                switch["started"] = timer.state.started_at_ms
            if len(beats) >= 20:
                scheduler.stop()

        scheduler.post(begin)
        scheduler.call_every(0.1, heartbeat)
        scheduler.run()
        scheduler.close()

        gaps = [b - a for a, b in zip(beats, beats[1:])]
        assert max(gaps) < 0.5
        assert switch["started"] - switch["at"] < 100
        assert timer.status == TimerStatus.RUNNING
        assert timer.state.current_issue_id == "P-2"

        posts = [c for c in client.send.call_args_list if c[0][1] == "POST"]
        assert len(posts) == 1
        assert posts[0][0][0] == "/rest/api/2/issue/P-1/worklog"
        assert "Something went wrong" not in ui.console.file.getvalue()
