"""Convenience entry point for running the payments Celery worker.

Most deployments will invoke the standard Celery CLI, but keeping a small
script makes local testing or Procfile-style runners straightforward.
"""
from __future__ import annotations

import sys

from .config.celery import celery_app


def main(argv: list[str] | None = None) -> None:
    # 对账任务都路由到 high 队列；附带 -B 时同时运行 pending 巡检调度
    celery_app.worker_main(
        argv=[
            "worker",
            "--hostname=payments@%h",
            "--queues=high,default",
            "--loglevel=INFO",
            *(argv if argv is not None else sys.argv[1:]),
        ]
    )


if __name__ == "__main__":
    main()
