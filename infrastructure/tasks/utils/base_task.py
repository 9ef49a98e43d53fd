"""Common base task for payment Celery jobs"""
from __future__ import annotations

import asyncio
from typing import Any, Coroutine, TypeVar

from celery import Task
from core.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class BaseTask(Task):
    """Structured lifecycle logging plus a runner for async job bodies."""

    def run_async(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on a fresh event loop owned by this task invocation."""
        return asyncio.run(coro)

    def on_retry(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        logger.warning(
            "celery_task_retry",
            task_id=task_id,
            task_name=self.name,
            kwargs=kwargs,
            retries=self.request.retries,
            error_type=type(exc).__name__,
        )
        super().on_retry(exc, task_id, args, kwargs, einfo)

    def on_failure(self, exc, task_id, args, kwargs, einfo):  # type: ignore[override]
        """Emit a structured error message before the default Celery handling."""
        # 渠道返回的原始报错不进入日志，只记录异常类型与稳定错误码
        logger.error(
            "celery_task_failure",
            task_id=task_id,
            task_name=self.name,
            kwargs=kwargs,
            error_type=type(exc).__name__,
            code=getattr(exc, "error_type", None),
        )
        super().on_failure(exc, task_id, args, kwargs, einfo)

    def on_success(self, retval, task_id, args, kwargs):  # type: ignore[override]
        logger.info(
            "celery_task_success",
            task_id=task_id,
            task_name=self.name,
        )
        super().on_success(retval, task_id, args, kwargs)
