"""Background workers."""

from theset.application.workers.background_tasks import BackgroundTaskRunner

__all__ = ["BackgroundTaskRunner"]
