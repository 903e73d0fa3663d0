"""Retention worker service."""

from retention_service.worker.main import RetentionWorkerService, main

__all__ = ["RetentionWorkerService", "main"]
