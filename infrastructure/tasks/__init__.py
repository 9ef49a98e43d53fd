"""Celery task infrastructure for background payment re-checks.

Exposes the configured Celery app and the dispatcher the API layer uses to
schedule re-verification of pending payments.
"""
from .config.celery import celery_app
from .utils.dispatcher import TaskDispatcher

__all__ = ["celery_app", "TaskDispatcher"]
