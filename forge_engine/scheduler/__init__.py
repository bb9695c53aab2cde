"""Cron scheduling of schedule triggers."""

from .scheduler import JobScheduler

__all__ = ["JobScheduler"]
