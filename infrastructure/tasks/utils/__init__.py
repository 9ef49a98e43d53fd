"""Task base class and scheduling facade."""
from .dispatcher import TaskDispatcher
from .base_task import BaseTask

__all__ = ["TaskDispatcher", "BaseTask"]
