"""Retention worker main entry point.

This module provides the worker service that schedules retention cycles:
every interval it tries to take the cluster lock and, when it gets it, runs
one cycle of the retention manager. It can run as a standalone service or
be imported for testing.
"""

import argparse
import asyncio
import signal
import sys
import time
from typing import List, Optional

from retention_service.config import Settings, load_settings
from retention_service.core.lock import RedisLock, RedisLockHandle
from retention_service.observability.logging import get_logger, setup_logging
from retention_service.observability.metrics import MetricsManager, get_metrics_manager
from retention_service.observability.tracing import get_telemetry_manager
from retention_service.retention.errors import LockNotAcquiredError, RetentionConfigurationError
from retention_service.retention.loader import build_adapters
from retention_service.retention.manager import (
    CycleReport,
    RetentionManager,
    set_retention_manager,
)
from retention_service.retention.models import RETENTION_MANAGER_ID

logger = get_logger(__name__)


class RetentionWorkerService:
    """Worker service running retention cycles on an interval.

    Cycle failures are logged and the next cycle is scheduled as usual; a
    misconfigured rule never stops the process.

    Example:
        >>> worker = RetentionWorkerService(manager, lock, interval=30.0)
        >>> await worker.start()
        >>> # Run until stopped
        >>> await worker.stop()
    """

    def __init__(
        self,
        manager: RetentionManager,
        lock: RedisLock,
        interval: float = 30.0,
        metrics: Optional[MetricsManager] = None,
    ) -> None:
        """Initialize the worker service.

        Args:
            manager: Retention manager running the cycles
            lock: Cluster lock guarding the cycles
            interval: Seconds between cycles
            metrics: Metrics manager (global one when omitted)
        """
        self.manager = manager
        self.lock = lock
        self.interval = interval
        self.metrics = metrics or get_metrics_manager()

        self.last_status: Optional[str] = None
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._cycle_task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Start the scheduling loop and run until stopped."""
        if self._running:
            logger.warning("retention_worker_already_running")
            return

        self._running = True
        logger.info(
            "retention_worker_started",
            manager=RETENTION_MANAGER_ID,
            interval=self.interval,
            lock_key=self.lock.key,
        )

        try:
            while self._running:
                self._cycle_task = asyncio.create_task(self.run_cycle())
                await self._cycle_task
                if not self._running:
                    break
                try:
                    await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.interval)
                except asyncio.TimeoutError:
                    continue
        except asyncio.CancelledError:
            logger.info("retention_worker_cancelled")
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Stop the worker gracefully, letting the running cycle wind down."""
        if not self._running:
            return

        logger.info("stopping_retention_worker")
        self._running = False
        self._shutdown_event.set()
        self.manager.shutdown()

        if self._cycle_task and not self._cycle_task.done():
            await asyncio.gather(self._cycle_task, return_exceptions=True)

        logger.info("retention_worker_stopped")

    async def close(self) -> None:
        """Release connections held by the worker."""
        await self.lock.disconnect()

    async def run_cycle(self) -> Optional[CycleReport]:
        """Run one cycle if the cluster lock can be taken.

        Returns:
            Cycle report, or None when the lock was contended or the cycle failed
        """
        try:
            handle = await self.lock.acquire()
        except LockNotAcquiredError:
            logger.debug("retention_lock_contended", lock_key=self.lock.key)
            self.metrics.record_lock_contended()
            self.last_status = "contended"
            return None
        except Exception as e:
            logger.error("retention_lock_acquire_failed", lock_key=self.lock.key, error=str(e))
            self.last_status = "failed"
            return None

        extender = asyncio.create_task(self._extend_lock(handle))
        started = time.monotonic()
        status = "failed"
        try:
            report = await self.manager.handle(handle)
            status = "cancelled" if report.cancelled else "completed"
            logger.info(
                "retention_cycle_completed",
                manager=RETENTION_MANAGER_ID,
                run_id=report.run_id,
                status=status,
                rules_total=report.rules_total,
                rules_processed=report.rules_processed,
                deleted=report.deleted_count,
            )
            return report
        except RetentionConfigurationError as e:
            logger.error("retention_cycle_misconfigured", manager=RETENTION_MANAGER_ID, error=str(e))
            return None
        except Exception as e:
            logger.error(
                "retention_cycle_failed",
                manager=RETENTION_MANAGER_ID,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
        finally:
            extender.cancel()
            try:
                await extender
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error("retention_lock_extend_failed", lock_key=self.lock.key, error=str(e))
            await handle.release()
            self.last_status = status
            self.metrics.record_cycle(status, time.monotonic() - started)

    async def _extend_lock(self, handle: RedisLockHandle) -> None:
        """Keep the lock alive while a cycle runs."""
        period = self.lock.ttl_ms / 2000
        while not handle.signal.cancelled:
            await asyncio.sleep(period)
            await handle.extend()

    def signal_handler(self, sig: int) -> None:
        """Handle shutdown signals.

        Args:
            sig: Signal number
        """
        logger.info("received_shutdown_signal", signal=sig)
        asyncio.create_task(self.stop())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Retention Manager Service")
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single retention cycle and exit",
    )
    parser.add_argument(
        "--config",
        help="YAML configuration file",
    )
    parser.add_argument(
        "--adapters",
        help="Store adapters factory as 'module:callable'",
    )
    return parser


def setup_observability(app_settings: Settings, serve_metrics: bool) -> None:
    """Configure logging, tracing and the metrics endpoint."""
    observability = app_settings.observability
    setup_logging(
        json_format=observability.log_format == "json",
        log_level=observability.log_level,
    )

    telemetry = get_telemetry_manager()
    if (observability.otlp_endpoint or observability.console_traces) and not telemetry.is_initialized:
        telemetry.setup_tracing(
            service_name=observability.service_name,
            service_version=observability.service_version,
            environment=observability.environment,
            otlp_endpoint=observability.otlp_endpoint,
            console_export=observability.console_traces,
        )

    if serve_metrics and observability.prometheus_enabled:
        get_metrics_manager().start_server(observability.prometheus_port)


async def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the retention worker.

    Returns:
        Process exit code
    """
    args = build_parser().parse_args(argv)

    app_settings = load_settings(args.config)
    if args.adapters:
        app_settings.retention_manager.adapters = args.adapters

    setup_observability(app_settings, serve_metrics=not args.once)
    manager_settings = app_settings.retention_manager

    try:
        adapters = await build_adapters(app_settings)
    except RetentionConfigurationError as e:
        logger.error("retention_adapters_invalid", error=str(e))
        return 1

    manager = RetentionManager(adapters, manager_settings)
    definition = manager.definition
    if not definition.enabled():
        logger.info("retention_manager_disabled", manager=definition.id)
        return 0
    if not args.once and not definition.enabled_to_start():
        logger.info("retention_manager_not_started", manager=definition.id)
        return 0

    set_retention_manager(manager)
    lock = RedisLock(
        definition.lock_key,
        ttl_ms=manager_settings.lock_ttl_ms,
        redis_settings=app_settings.redis,
    )
    worker = RetentionWorkerService(manager, lock, interval=manager_settings.interval_seconds)

    try:
        if args.once:
            await worker.run_cycle()
            return 1 if worker.last_status == "failed" else 0

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, worker.signal_handler, sig)

        try:
            await worker.start()
        except KeyboardInterrupt:
            logger.info("interrupted_by_user")
        return 0
    finally:
        await worker.stop()
        await worker.close()
        get_telemetry_manager().shutdown()
        set_retention_manager(None)


def run() -> None:
    """Console script entry point."""
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
