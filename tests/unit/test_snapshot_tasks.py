"""Tests for the Celery snapshot tasks."""

from contextlib import asynccontextmanager
from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from networth.core.exceptions import PersistFailure, StoreUnavailable
from networth.services.snapshot_orchestrator import SweepReport, UserFailure
from networth.services.snapshot_service import SnapshotOutcome, SnapshotResult


@asynccontextmanager
async def _fake_task_session_factory():
    factory = MagicMock()
    session = AsyncMock()
    factory.return_value.__aenter__ = AsyncMock(return_value=session)
    factory.return_value.__aexit__ = AsyncMock(return_value=False)
    yield factory


@pytest.mark.unit
class TestCreateDailyNetWorthSnapshots:
    """Tests for the Beat entry-point task."""

    def test_returns_sweep_report(self):
        from networth.workers.tasks.snapshot_tasks import create_daily_net_worth_snapshots

        report = SweepReport(
            snapshot_date=date(2025, 6, 15),
            written=["U1"],
            no_accounts=["U2"],
            failed=[UserFailure("U3", "store_unavailable", "down")],
        )

        with patch(
            "networth.workers.tasks.snapshot_tasks.task_session_factory",
            _fake_task_session_factory,
        ), patch(
            "networth.workers.tasks.snapshot_tasks.snapshot_orchestrator"
        ) as mock_orchestrator:
            mock_orchestrator.run_daily_sweep = AsyncMock(return_value=report)
            result = create_daily_net_worth_snapshots.apply().get()

        assert result["written"] == ["U1"]
        assert result["no_accounts"] == ["U2"]
        assert result["failed"][0]["user_id"] == "U3"
        mock_orchestrator.run_daily_sweep.assert_awaited_once()

    def test_task_name_matches_beat_schedule(self):
        from networth.workers.celery_app import celery_app
        from networth.workers.tasks.snapshot_tasks import create_daily_net_worth_snapshots

        entry = celery_app.conf.beat_schedule["create-daily-net-worth-snapshots"]
        assert entry["task"] == create_daily_net_worth_snapshots.name

    def test_schedule_is_daily_at_configured_time(self):
        from networth.config import settings
        from networth.workers.celery_app import celery_app

        schedule = celery_app.conf.beat_schedule["create-daily-net-worth-snapshots"]["schedule"]
        assert schedule.hour == {settings.SNAPSHOT_SWEEP_HOUR}
        assert schedule.minute == {settings.SNAPSHOT_SWEEP_MINUTE}
        assert celery_app.conf.timezone == settings.SNAPSHOT_TIMEZONE

    def test_retries_on_transient_errors(self):
        from networth.workers.tasks.snapshot_tasks import create_daily_net_worth_snapshots

        assert StoreUnavailable in create_daily_net_worth_snapshots.autoretry_for
        assert PersistFailure in create_daily_net_worth_snapshots.autoretry_for
        assert create_daily_net_worth_snapshots.max_retries == 3


@pytest.mark.unit
class TestSnapshotOnBalanceChange:
    """Tests for the queue-delivered change notification task."""

    @pytest.fixture
    def event(self):
        return {
            "user_id": "alice",
            "account_id": "acc-1",
            "before": {"balance": "100"},
            "after": {"balance": "250"},
        }

    def test_written_result_is_json_friendly(self, event):
        from networth.workers.tasks.snapshot_tasks import snapshot_on_balance_change

        written = SnapshotResult(
            outcome=SnapshotOutcome.WRITTEN,
            user_id="alice",
            snapshot_date=date(2025, 6, 15),
            total_net_worth=Decimal("334.00"),
            account_count=2,
        )

        with patch(
            "networth.workers.tasks.snapshot_tasks.task_session_factory",
            _fake_task_session_factory,
        ), patch(
            "networth.workers.tasks.snapshot_tasks.snapshot_orchestrator"
        ) as mock_orchestrator:
            mock_orchestrator.handle_balance_change = AsyncMock(return_value=written)
            result = snapshot_on_balance_change.apply(args=[event]).get()

        assert result == {
            "written": True,
            "total_net_worth": "334.00",
            "account_count": 2,
            "snapshot_date": "2025-06-15",
        }
        change = mock_orchestrator.handle_balance_change.await_args.args[1]
        assert change.after.balance == Decimal("250")

    def test_unchanged_balance_reports_not_written(self, event):
        from networth.workers.tasks.snapshot_tasks import snapshot_on_balance_change

        with patch(
            "networth.workers.tasks.snapshot_tasks.task_session_factory",
            _fake_task_session_factory,
        ), patch(
            "networth.workers.tasks.snapshot_tasks.snapshot_orchestrator"
        ) as mock_orchestrator:
            mock_orchestrator.handle_balance_change = AsyncMock(return_value=None)
            result = snapshot_on_balance_change.apply(args=[event]).get()

        assert result == {"written": False}
