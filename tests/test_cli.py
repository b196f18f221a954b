"""Tests for CLI module."""

from datetime import date
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from conftest import MEETINGS, at, make_entry, make_task
from standup.cli import app, get_report_range
from standup.config import Config
from standup.errors import InvalidOperationError
from standup.models import IterationWorkItem, WorkItemType


runner = CliRunner()

FRIDAY = date(2024, 5, 3)


@pytest.fixture
def cli_services(services, time_tracker, issue_tracker):
    issue_tracker.add(
        make_task(1000, "Login page", type=WorkItemType.PRODUCT_BACKLOG_ITEM, backlog_priority=100.0),
        make_task(2000, "Validate email", parent_id=1000, remaining_work=5.0, original_estimate=8.0,
                  backlog_priority=200.0),
        make_task(4, "Bug", type=WorkItemType.BUG, backlog_priority=400.0),
    )
    time_tracker.add(
        make_entry(1, at(2, 9), at(2, 10), "D#2000 Validate email\n🏆Wrote validator"),
        make_entry(2, at(2, 10), at(2, 11), "Planning", activity=MEETINGS),
    )
    with patch("standup.cli.get_services", return_value=services):
        yield services


class TestHelperFunctions:
    """Tests for CLI helper functions."""

    def test_default_is_today(self):
        """Test no options reports today."""
        assert get_report_range(FRIDAY) == (FRIDAY, FRIDAY)

    def test_week(self):
        """Test --week starts on Monday."""
        assert get_report_range(FRIDAY, week=True) == (date(2024, 4, 29), FRIDAY)

    def test_days(self):
        """Test --days counts today."""
        assert get_report_range(FRIDAY, days=3) == (date(2024, 5, 1), FRIDAY)

    def test_single_date(self):
        """Test --date reports one day."""
        assert get_report_range(FRIDAY, date_str="2024-05-02") == (date(2024, 5, 2), date(2024, 5, 2))

    def test_from_without_to(self):
        """Test --from alone ends today."""
        assert get_report_range(FRIDAY, from_date="2024-05-01") == (date(2024, 5, 1), FRIDAY)


class TestCliCommands:
    """Tests for CLI commands."""

    def test_report(self, cli_services):
        """Test the report shows the task tree."""
        result = runner.invoke(app, ["report", "--date", "2024-05-02"])

        assert result.exit_code == 0
        assert "2024-05-02" in result.stdout
        assert "Validate email" in result.stdout
        assert "Wrote validator" in result.stdout
        assert "Meetings" in result.stdout

    def test_report_invalid_date(self, cli_services):
        """Test a malformed date is a usage error."""
        result = runner.invoke(app, ["report", "--date", "May 2"])

        assert result.exit_code != 0

    def test_report_too_many_days(self, cli_services):
        """Test service errors are printed and exit with 1."""
        result = runner.invoke(app, ["report", "--from", "2024-04-01", "--to", "2024-05-02"])

        assert result.exit_code == 1
        assert "too many days" in result.stdout

    def test_not_configured(self):
        """Test a missing configuration is reported."""
        with patch("standup.cli.get_services", side_effect=InvalidOperationError("not configured")):
            result = runner.invoke(app, ["report"])

        assert result.exit_code == 1
        assert "not configured" in result.stdout

    def test_export(self, cli_services, time_tracker, issue_tracker):
        """Test export adjusts the task and marks entries exported."""
        result = runner.invoke(app, ["export", "--date", "2024-05-02", "--yes"])

        assert result.exit_code == 0
        assert sorted(time_tracker.exported_ids) == [1, 2]
        assert issue_tracker.work_items[2000].completed_work == 1.0

    def test_export_declined(self, cli_services, time_tracker):
        """Test nothing is exported without confirmation."""
        result = runner.invoke(app, ["export", "--date", "2024-05-02"], input="n\n")

        assert result.exit_code == 0
        assert time_tracker.exported_ids == []

    def test_adjust(self, cli_services, issue_tracker):
        """Test manual completed work adjustment."""
        result = runner.invoke(app, ["adjust", "2000", "1.5"])

        assert result.exit_code == 0
        assert issue_tracker.work_items[2000].completed_work == 1.5
        assert issue_tracker.work_items[2000].remaining_work == 3.5

    def test_adjust_not_a_task(self, cli_services):
        """Test adjusting a backlog item fails."""
        result = runner.invoke(app, ["adjust", "1000", "1"])

        assert result.exit_code == 1
        assert "not a task" in result.stdout

    def test_reorder(self, cli_services, issue_tracker):
        """Test moving a work item between two others."""
        issue_tracker.iteration_members = [IterationWorkItem(i) for i in (1000, 2000, 4)]

        result = runner.invoke(app, ["reorder", "Team A", "sprint-1", "4", "--after", "1000", "--before", "2000"])

        assert result.exit_code == 0
        assert issue_tracker.work_items[4].backlog_priority == 150.0

    def test_export_partial_failure(self, cli_services, time_tracker, issue_tracker):
        """Test a failing task is reported and its entries stay unexported."""
        issue_tracker.conflict_ids.add(2000)

        result = runner.invoke(app, ["export", "--date", "2024-05-02", "--yes"])

        assert result.exit_code == 1
        assert "調整失敗" in result.stdout
        assert time_tracker.exported_ids == [2]
        assert issue_tracker.work_items[2000].completed_work is None

    def test_stop_current_timer(self, cli_services, time_tracker):
        """Test stop without an id stops the running entry."""
        time_tracker.add(make_entry(3, at(3, 16), None))

        result = runner.invoke(app, ["stop"])

        assert result.exit_code == 0
        assert time_tracker.stopped_ids == [3]
        assert "#3" in result.stdout

    def test_stop_nothing_running(self, cli_services, time_tracker):
        """Test stop without an id when no timer runs."""
        result = runner.invoke(app, ["stop"])

        assert result.exit_code == 0
        assert time_tracker.stopped_ids == []
        assert "沒有計時中" in result.stdout

    def test_stop_missing_entry(self, cli_services):
        """Test stopping an unknown entry."""
        result = runner.invoke(app, ["stop", "42"])

        assert result.exit_code == 1
        assert "42" in result.stdout

    def test_status_not_configured(self):
        """Test status points to setup when not configured."""
        with patch("standup.cli.Config.load", return_value=Config()):
            result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "standup setup" in result.stdout
