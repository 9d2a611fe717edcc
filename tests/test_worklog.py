"""Tests for worklog module."""

import pytest
from unittest.mock import MagicMock

from jira_worklog.errors import AuthError, TrackerReportedError, TransportError
from jira_worklog.scheduler import ManualScheduler
from jira_worklog.worklog import (
    WorklogEntry,
    WorklogLoader,
    WorklogSubmitter,
    render_comment,
    spent_seconds,
)

STARTED_MS = 1_767_173_400_000  # 2025-12-31T09:30:00Z


class TestHelpers:
    """Tests for comment and duration helpers."""

    def test_render_comment_placeholders(self):
        """Test every placeholder is substituted."""
        comment = render_comment("{issueId} #{TaskNumber} in {JiraProject}", "PROJ-42", "")
        assert comment == "PROJ-42 #42 in PROJ"

    def test_render_comment_uses_configured_project(self):
        """Test configured project key wins over the issue prefix."""
        assert render_comment("{JiraProject}-{TaskNumber}", "42", "CORE") == "CORE-42"

    def test_render_comment_empty_template(self):
        """Test empty template gives empty comment."""
        assert render_comment("", "PROJ-1") == ""

    def test_spent_seconds_floor(self):
        """Test less than a minute is rounded up to 60 seconds."""
        assert spent_seconds(STARTED_MS, STARTED_MS) == 60
        assert spent_seconds(STARTED_MS, STARTED_MS + 500) == 60
        assert spent_seconds(STARTED_MS, STARTED_MS + 59_001) == 60

    def test_spent_seconds_rounds_up(self):
        """Test partial seconds are rounded up."""
        assert spent_seconds(STARTED_MS, STARTED_MS + 90_001) == 91


class TestWorklogEntry:
    """Tests for WorklogEntry dataclass."""

    def test_payload_with_comment(self):
        """Test payload fields and string encoded seconds."""
        entry = WorklogEntry("PROJ-1", "2025-12-31T09:30:00.000+0000", 120, "Work")

        assert entry.to_payload() == {
            "comment": "Work",
            "started": "2025-12-31T09:30:00.000+0000",
            "timeSpentSeconds": "120",
        }

    def test_payload_omits_empty_comment(self):
        """Test empty comment is left out entirely."""
        entry = WorklogEntry("PROJ-1", "2025-12-31T09:30:00.000+0000", 60)

        assert "comment" not in entry.to_payload()


class TestWorklogSubmitter:
    """Tests for WorklogSubmitter."""

    def make_submitter(self, sample_config, ui, response=None):
        client = MagicMock()
        client.send.return_value = response if response is not None else {"id": "10001"}
        scheduler = ManualScheduler(start_ms=STARTED_MS + 125_400)
        return WorklogSubmitter(client, lambda: sample_config, ui, scheduler), client

    def test_submit_posts_worklog(self, sample_config, ui):
        """Test worklog POST path and payload."""
        submitter, client = self.make_submitter(sample_config, ui)

        future = submitter.submit("PROJ-7", STARTED_MS)

        assert future.result() == {"id": "10001"}
        client.send.assert_called_once_with(
            "/rest/api/2/issue/PROJ-7/worklog",
            "POST",
            {
                "comment": "Working on PROJ-7",
                "started": "2025-12-31T09:30:00.000+0000",
                "timeSpentSeconds": "126",
            },
        )

    def test_submit_uses_given_end_time(self, sample_config, ui):
        """Test the segment ends when stopped, not when the request runs."""
        submitter, client = self.make_submitter(sample_config, ui)

        submitter.submit("PROJ-7", STARTED_MS, STARTED_MS + 90_000)

        assert client.send.call_args[0][2]["timeSpentSeconds"] == "90"

    def test_submit_short_segment_sends_minute(self, sample_config, ui):
        """Test the 60 second floor reaches the payload."""
        submitter, client = self.make_submitter(sample_config, ui)

        submitter.submit("PROJ-7", STARTED_MS, STARTED_MS + 300)

        assert client.send.call_args[0][2]["timeSpentSeconds"] == "60"

    def test_submit_runs_in_issue_lane(self, sample_config, ui):
        """Test submissions are queued per issue id."""
        submitter, client = self.make_submitter(sample_config, ui)
        submitter.scheduler = MagicMock()

        submitter.submit("PROJ-7", STARTED_MS, STARTED_MS + 60_000)

        args, kwargs = submitter.scheduler.run_serial.call_args
        assert args[0] == "PROJ-7"
        assert args[1] == submitter.send
        assert kwargs["on_done"] == submitter.report
        client.send.assert_not_called()

    def test_submit_tracker_error_surfaced(self, sample_config, ui):
        """Test the first tracker error message is shown."""
        submitter, _ = self.make_submitter(
            sample_config, ui,
            response={"errorMessages": ["Issue does not exist", "second"], "errors": {}},
        )
        ui.indicator.show()

        future = submitter.submit("NOPE-1", STARTED_MS)

        assert isinstance(future.exception(), TrackerReportedError)
        output = ui.console.file.getvalue()
        assert "Issue does not exist" in output
        assert "second" not in output
        assert ui.indicator.visible is False

    def test_submit_transport_error_not_raised(self, sample_config, ui):
        """Test failures are reported instead of raised."""
        submitter, client = self.make_submitter(sample_config, ui)
        client.send.side_effect = TransportError("boom")

        submitter.submit("PROJ-7", STARTED_MS)

        assert "Something went wrong." in ui.console.file.getvalue()

    def test_submit_auth_error_not_raised(self, sample_config, ui):
        """Test a failed re-login is reported as bad credentials."""
        submitter, client = self.make_submitter(sample_config, ui)
        client.send.side_effect = AuthError("rejected")

        submitter.submit("PROJ-7", STARTED_MS)

        assert "Incorrect login or password" in ui.console.file.getvalue()


class TestWorklogLoader:
    """Tests for WorklogLoader."""

    def test_load_sums_and_persists(self, context, ui, scheduler, mock_worklogs_response):
        """Test remote total overwrites the local counter."""
        client = MagicMock()
        client.send.return_value = mock_worklogs_response
        context.set_seconds("feature/PROJ-7", 99999)
        loaded = []

        loader = WorklogLoader(client, context, ui, scheduler)
        future = loader.load("feature/PROJ-7", "PROJ-7", on_loaded=loaded.append)

        assert future.result() == 5461
        assert loaded == [5461]
        assert context.get_seconds("feature/PROJ-7") == 5461
        client.send.assert_called_once_with("/rest/api/2/issue/PROJ-7/worklog", "GET")

    def test_load_empty_worklogs(self, context, ui, scheduler):
        """Test an issue without worklogs resets to zero."""
        client = MagicMock()
        client.send.return_value = {"worklogs": []}
        context.set_seconds("b", 50)

        WorklogLoader(client, context, ui, scheduler).load("b", "PROJ-1")

        assert context.get_seconds("b") == 0

    def test_load_tracker_error_keeps_local_value(self, context, ui, scheduler):
        """Test a tracker error leaves the local counter untouched."""
        client = MagicMock()
        client.send.return_value = {"errorMessages": ["Issue does not exist"]}
        context.set_seconds("b", 50)
        loaded = []

        WorklogLoader(client, context, ui, scheduler).load("b", "NOPE-1", on_loaded=loaded.append)

        assert loaded == [None]
        assert context.get_seconds("b") == 50
        assert "Issue does not exist" in ui.console.file.getvalue()
