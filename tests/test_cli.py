"""
Tests for the command line entry point.
"""

from unittest.mock import AsyncMock, patch

import pytest

from catalogworker.__main__ import build_parser, main


class TestParser:
    """Test argument parsing."""

    def test_sync_defaults(self):
        args = build_parser().parse_args(["sync"])
        assert args.command == "sync"
        assert args.mode == "full"
        assert args.dry_run is False

    def test_sync_options(self):
        args = build_parser().parse_args(["sync", "--mode", "retry_skipped", "--dry-run"])
        assert args.mode == "retry_skipped"
        assert args.dry_run is True

    def test_invalid_mode(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sync", "--mode", "sometimes"])

    def test_history_limit(self):
        args = build_parser().parse_args(["history", "--limit", "3", "--shop", "a.myshopify.com"])
        assert args.limit == 3
        assert args.shop == "a.myshopify.com"

    def test_worker_options(self):
        args = build_parser().parse_args(["worker", "--create-schedule", "--temporal-host", "temporal:7233"])
        assert args.create_schedule is True
        assert args.temporal_host == "temporal:7233"

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestMain:
    """Test exit codes."""

    def test_exit_code_from_command(self):
        command = AsyncMock(return_value=1)
        with patch.dict("catalogworker.__main__.COMMANDS", {"sync": command}):
            with pytest.raises(SystemExit) as exc:
                main(["sync"])

        assert exc.value.code == 1
        command.assert_awaited_once()

    def test_failure_exits_nonzero(self):
        command = AsyncMock(side_effect=RuntimeError("no feed"))
        with patch.dict("catalogworker.__main__.COMMANDS", {"stats": command}):
            with pytest.raises(SystemExit) as exc:
                main(["stats"])

        assert exc.value.code == 1
