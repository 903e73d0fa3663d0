"""Unit tests for the worker main module.

This module tests the RetentionWorkerService class and main entry point.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from retention_service.config import RetentionManagerSettings, Settings
from retention_service.retention.cancellation import CancellationToken
from retention_service.retention.errors import LockNotAcquiredError, RetentionConfigurationError
from retention_service.retention.manager import CycleReport
from retention_service.worker.main import RetentionWorkerService, main


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def lock_handle():
    """Create a mock held lock."""
    handle = MagicMock()
    handle.signal = CancellationToken()
    handle.extend = AsyncMock()
    handle.release = AsyncMock()
    return handle


@pytest.fixture
def mock_lock(lock_handle):
    """Create a mock lock that hands out the held lock."""
    lock = AsyncMock()
    lock.key = "retention:lock:retention_manager_lock"
    lock.ttl_ms = 60000
    lock.acquire = AsyncMock(return_value=lock_handle)
    lock.disconnect = AsyncMock()
    return lock


@pytest.fixture
def mock_manager():
    """Create a mock retention manager."""
    manager = MagicMock()
    manager.handle = AsyncMock(return_value=CycleReport(run_id="run-1", rules_total=0))
    manager.shutdown = MagicMock()
    return manager


@pytest.fixture
def metrics():
    """Create a mock metrics manager."""
    return MagicMock()


@pytest.fixture
def worker(mock_manager, mock_lock, metrics):
    """Create a worker with a short interval."""
    return RetentionWorkerService(mock_manager, mock_lock, interval=0.01, metrics=metrics)


def enabled_settings(**kwargs):
    return Settings(retention_manager=RetentionManagerSettings(enabled=True, **kwargs))


# ============================================================================
# Cycle Tests
# ============================================================================

@pytest.mark.unit
class TestRunCycle:
    """Tests for RetentionWorkerService.run_cycle."""

    @pytest.mark.asyncio
    async def test_cycle_completed(self, worker, mock_manager, lock_handle, metrics):
        report = await worker.run_cycle()

        assert report.run_id == "run-1"
        mock_manager.handle.assert_awaited_once_with(lock_handle)
        lock_handle.release.assert_awaited_once()
        assert worker.last_status == "completed"
        assert metrics.record_cycle.call_args.args[0] == "completed"

    @pytest.mark.asyncio
    async def test_cycle_cancelled(self, worker, mock_manager, metrics):
        mock_manager.handle.return_value = CycleReport(run_id="run-2", rules_total=3, cancelled=True)

        await worker.run_cycle()

        assert worker.last_status == "cancelled"
        assert metrics.record_cycle.call_args.args[0] == "cancelled"

    @pytest.mark.asyncio
    async def test_lock_contended(self, worker, mock_lock, mock_manager, metrics):
        mock_lock.acquire.side_effect = LockNotAcquiredError(mock_lock.key)

        result = await worker.run_cycle()

        assert result is None
        assert worker.last_status == "contended"
        mock_manager.handle.assert_not_awaited()
        metrics.record_lock_contended.assert_called_once()
        metrics.record_cycle.assert_not_called()

    @pytest.mark.asyncio
    async def test_lock_backend_unavailable(self, worker, mock_lock, mock_manager):
        mock_lock.acquire.side_effect = ConnectionError("redis down")

        result = await worker.run_cycle()

        assert result is None
        assert worker.last_status == "failed"
        mock_manager.handle.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_misconfigured_rule_does_not_crash(self, worker, mock_manager, lock_handle, metrics):
        mock_manager.handle.side_effect = RetentionConfigurationError("Scope bogus not existing")

        with patch("retention_service.worker.main.logger") as mock_logger:
            result = await worker.run_cycle()

        assert result is None
        mock_logger.error.assert_called_once()
        lock_handle.release.assert_awaited_once()
        assert worker.last_status == "failed"
        assert metrics.record_cycle.call_args.args[0] == "failed"

    @pytest.mark.asyncio
    async def test_unexpected_error_is_logged(self, worker, mock_manager, lock_handle):
        mock_manager.handle.side_effect = RuntimeError("rule store unavailable")

        result = await worker.run_cycle()

        assert result is None
        lock_handle.release.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_lock_extended_during_long_cycle(self, worker, mock_lock, mock_manager, lock_handle):
        mock_lock.ttl_ms = 20

        async def slow_cycle(handle):
            await asyncio.sleep(0.05)
            return CycleReport(run_id="run-3", rules_total=1)

        mock_manager.handle.side_effect = slow_cycle

        await worker.run_cycle()

        assert lock_handle.extend.await_count >= 1

    @pytest.mark.asyncio
    async def test_extend_failure_keeps_report(self, worker, mock_lock, mock_manager, lock_handle, metrics):
        mock_lock.ttl_ms = 20
        lock_handle.extend.side_effect = RuntimeError("redis connection reset")

        async def slow_cycle(handle):
            await asyncio.sleep(0.05)
            return CycleReport(run_id="run-4", rules_total=1)

        mock_manager.handle.side_effect = slow_cycle

        with patch("retention_service.worker.main.logger") as mock_logger:
            report = await worker.run_cycle()

        assert report.run_id == "run-4"
        lock_handle.release.assert_awaited_once()
        assert worker.last_status == "completed"
        assert metrics.record_cycle.call_args.args[0] == "completed"
        assert mock_logger.error.call_args.args[0] == "retention_lock_extend_failed"


# ============================================================================
# Lifecycle Tests
# ============================================================================

@pytest.mark.unit
class TestWorkerLifecycle:
    """Tests for worker start and stop."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self, worker, mock_manager):
        task = asyncio.create_task(worker.start())
        await asyncio.sleep(0.05)

        await worker.stop()
        await asyncio.wait_for(task, timeout=1)

        assert mock_manager.handle.await_count >= 2
        mock_manager.shutdown.assert_called_once()
        assert worker._running is False

    @pytest.mark.asyncio
    async def test_stop_when_not_running(self, worker, mock_manager):
        await worker.stop()

        mock_manager.shutdown.assert_not_called()

    @pytest.mark.asyncio
    async def test_close_disconnects_lock(self, worker, mock_lock):
        await worker.close()

        mock_lock.disconnect.assert_awaited_once()


# ============================================================================
# Main Entry Point Tests
# ============================================================================

@pytest.mark.unit
class TestMain:
    """Tests for the main entry point."""

    @pytest.mark.asyncio
    async def test_disabled_manager(self):
        with patch("retention_service.worker.main.load_settings", return_value=Settings()), \
                patch("retention_service.worker.main.setup_observability"), \
                patch("retention_service.worker.main.RetentionWorkerService") as mock_worker_cls:
            code = await main(["--once"])

        assert code == 0
        mock_worker_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_not_started_automatically(self):
        settings = enabled_settings(start_enabled=False)

        with patch("retention_service.worker.main.load_settings", return_value=settings), \
                patch("retention_service.worker.main.setup_observability"), \
                patch("retention_service.worker.main.RetentionWorkerService") as mock_worker_cls:
            code = await main([])

        assert code == 0
        mock_worker_cls.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_once(self):
        worker = MagicMock()
        worker.run_cycle = AsyncMock()
        worker.stop = AsyncMock()
        worker.close = AsyncMock()
        worker.last_status = "completed"

        with patch("retention_service.worker.main.load_settings", return_value=enabled_settings(start_enabled=False)), \
                patch("retention_service.worker.main.setup_observability"), \
                patch("retention_service.worker.main.RetentionWorkerService", return_value=worker):
            code = await main(["--once"])

        assert code == 0
        worker.run_cycle.assert_awaited_once()
        worker.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_once_failed_cycle(self):
        worker = MagicMock()
        worker.run_cycle = AsyncMock()
        worker.stop = AsyncMock()
        worker.close = AsyncMock()
        worker.last_status = "failed"

        with patch("retention_service.worker.main.load_settings", return_value=enabled_settings()), \
                patch("retention_service.worker.main.setup_observability"), \
                patch("retention_service.worker.main.RetentionWorkerService", return_value=worker):
            code = await main(["--once"])

        assert code == 1

    @pytest.mark.asyncio
    async def test_invalid_adapters(self):
        with patch("retention_service.worker.main.load_settings", return_value=enabled_settings()), \
                patch("retention_service.worker.main.setup_observability"):
            code = await main(["--once", "--adapters", "missing.module.for.retention:build"])

        assert code == 1
