"""ORM model package — registers all models with Base.metadata."""

from promptcraft.models.job import TERMINAL_STATUSES, Job, JobStatus
from promptcraft.models.scene import Scene, Workflow

__all__ = [
    "Job",
    "JobStatus",
    "TERMINAL_STATUSES",
    "Scene",
    "Workflow",
]
