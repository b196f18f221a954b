"""Tests for outbox module."""

import json
from datetime import timedelta

import pytest

from conftest import FakeClock
from standup.models import TaskAdjustment
from standup.outbox import AdjustmentOutbox


class TestAdjustmentOutbox:
    """Tests for AdjustmentOutbox class."""

    @pytest.mark.asyncio
    async def test_send_appends_json_lines(self, tmp_path):
        """Test each adjustment is one JSON line."""
        path = tmp_path / "spool" / "adjustments.jsonl"
        outbox = AdjustmentOutbox(path, clock=FakeClock())

        await outbox.send(TaskAdjustment(2000, timedelta(minutes=90)))
        await outbox.send(TaskAdjustment(3000, timedelta(hours=-1)))

        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        record = json.loads(lines[0])
        assert record["workItemId"] == 2000
        assert record["adjustment"] == 1.5
        assert record["timestamp"].startswith("2024-05-03T17:00:00")

    @pytest.mark.asyncio
    async def test_read_all(self, tmp_path):
        """Test written adjustments can be read back."""
        outbox = AdjustmentOutbox(tmp_path / "adjustments.jsonl")

        await outbox.send(TaskAdjustment(2000, timedelta(hours=2)))

        assert outbox.read_all() == [TaskAdjustment(2000, timedelta(hours=2))]

    def test_read_all_missing_file(self, tmp_path):
        """Test a missing spool file has no adjustments."""
        assert AdjustmentOutbox(tmp_path / "none.jsonl").read_all() == []
