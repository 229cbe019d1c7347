"""Celery task definitions package."""

from restaurant_ledger.tasks import events  # noqa: F401

__all__ = ["events"]
