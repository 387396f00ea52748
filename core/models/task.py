"""Task tree node."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field

from .utils import now_iso


class TaskStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    ERROR = "error"


class Task(BaseModel):
    id: str
    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.PENDING
    parentId: str | None = Field(
        default=None,
        description="Id of the parent task; the tree never stores object back-references",
    )
    children: list[Task] = Field(default_factory=list)
    createdAt: str = Field(default_factory=now_iso)
    updatedAt: str = Field(default_factory=now_iso)

    def flat_copy(self) -> Task:
        """Copy of this node without its children."""
        return self.model_copy(update={"children": []})
