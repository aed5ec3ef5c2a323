"""
Data model shared by the Google Tasks source, the Notion sink and the sync core.

Tasks come from Google Tasks, records are rows of the Notion database.
The two sides are shaped differently; the helpers here translate between them.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

# Google Tasks completion states
TASK_COMPLETED = 'completed'
TASK_OPEN = 'needsAction'

# Notion status select options
STATUS_COMPLETED = 'Completed'
STATUS_NOT_STARTED = 'Not Started'

# Sink field names used by the core (providers map them to real properties)
FIELD_TITLE = 'title'
FIELD_TASK_LIST = 'task_list_name'
FIELD_STATUS = 'status'
FIELD_DUE_DATE = 'due_date'


@dataclass
class Task:
    """A single Google Task, annotated with the list it belongs to."""
    id: str
    title: str
    status: str = TASK_OPEN
    due: Optional[str] = None
    task_list_id: str = ''
    task_list_title: str = ''


@dataclass
class TaskList:
    """A Google Tasks list and its tasks in API order."""
    id: str
    title: str
    tasks: List[Task] = field(default_factory=list)


@dataclass
class SinkRecord:
    """A row of the Notion database representing one synchronized task."""
    id: str
    title: str
    task_list_name: str = ''
    status: str = STATUS_NOT_STARTED
    due_date: Optional[str] = None
    archived: bool = False


def derive_status(task: Task) -> str:
    """Map a Google Tasks completion state to the Notion status option."""
    return STATUS_COMPLETED if task.status == TASK_COMPLETED else STATUS_NOT_STARTED


def build_record_fields(task: Task) -> Dict[str, str]:
    """Build the sink fields for a newly observed task.

    The due date is only present when the task carries one.
    """
    fields = {
        FIELD_TITLE: task.title,
        FIELD_TASK_LIST: task.task_list_title,
        FIELD_STATUS: derive_status(task),
    }
    if task.due:
        fields[FIELD_DUE_DATE] = task.due
    return fields


def iter_tasks(task_lists: List[TaskList]):
    """Yield every task of every list, in list order."""
    for task_list in task_lists:
        for task in task_list.tasks:
            yield task
