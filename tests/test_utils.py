"""Tests for shared utility helpers."""

from __future__ import annotations

import asyncio
import json
from unittest.mock import patch

import pytest

from wagate.utils import create_background_task, preview, write_json_atomic


class TestWriteJsonAtomic:
    def test_writes_and_creates_parents(self, tmp_path):
        target = tmp_path / "nested" / "dir" / "data.json"
        write_json_atomic(target, {"a": 1})
        assert json.loads(target.read_text()) == {"a": 1}
        assert not target.with_suffix(".json.tmp").exists()

    def test_overwrites(self, tmp_path):
        target = tmp_path / "data.json"
        write_json_atomic(target, {"a": 1})
        write_json_atomic(target, {"b": 2}, indent=2)
        assert json.loads(target.read_text()) == {"b": 2}


class TestCreateBackgroundTask:
    async def test_successful_task_completes(self):
        done: list[str] = []

        async def work():
            done.append("ok")

        await create_background_task(work(), name="test-success")
        assert done == ["ok"]

    async def test_failed_task_is_logged(self):
        async def fail():
            raise RuntimeError("intentional failure")

        with patch("wagate.utils.logger") as mock_logger:
            task = create_background_task(fail(), name="test-failure")
            with pytest.raises(RuntimeError):
                await task
            await asyncio.sleep(0)

        mock_logger.error.assert_called_once()
        assert mock_logger.error.call_args.kwargs["task_name"] == "test-failure"

    async def test_cancelled_task_is_not_logged(self):
        async def hang():
            await asyncio.sleep(999)

        with patch("wagate.utils.logger") as mock_logger:
            task = create_background_task(hang(), name="test-cancel")
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            await asyncio.sleep(0)

        mock_logger.error.assert_not_called()


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        (None, "(no text)"),
        ("", "(no text)"),
        ("short", "short"),
        ("x" * 50, "x" * 50),
        ("x" * 51, "x" * 50 + "..."),
    ],
)
def test_preview(text, expected):
    assert preview(text) == expected
