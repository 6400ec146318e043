import pydantic
from enum import Enum
from datetime import datetime
from typing import Optional, List
from uuid import UUID
from pydantic import ConfigDict
from pydantic.alias_generators import to_camel

class TaskStatus(str, Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    TESTING = "testing"
    FIXING = "fixing"
    DONE = "done"
    CLOSED = "closed"

# --- Input models ---
# Title presence and trimming are enforced by the workflow service so
# that the error message is the same for every caller.
class TaskCreate(pydantic.BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None

class TaskUpdate(pydantic.BaseModel):
    """
    Partial update. Only the fields present in the request body are applied
    (read with model_dump(exclude_unset=True)).
    """
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None

class BulkTaskFailedRequest(pydantic.BaseModel):
    # Task codes, not internal ids.
    ids: Optional[List[str]] = None

# --- Output models ---
class TaskRead(pydantic.BaseModel):
    id: UUID
    code: str
    title: str
    description: Optional[str] = None
    status: TaskStatus
    user_id: UUID
    created_at: datetime
    updated_at: datetime
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

def serialize_task(task) -> dict:
    """ORM Task -> camelCase JSON-ready dict."""
    return TaskRead.model_validate(task).model_dump(mode="json", by_alias=True)
