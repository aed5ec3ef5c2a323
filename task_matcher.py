"""
Pair Google Tasks with Notion records and classify what needs to be written.

Tasks and records are matched on exact title. When a link table
(task id -> record id) is supplied, linked pairs are matched first and title
matching is only the fallback for tasks seen for the first time.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from task_models import (
    FIELD_STATUS, FIELD_TITLE, SinkRecord, Task, TaskList, derive_status, iter_tasks,
)

logger = logging.getLogger(__name__)


@dataclass
class Match:
    """A task paired with the record that represents it."""
    task: Task
    record: SinkRecord
    fields: Dict[str, str] = field(default_factory=dict)
    by_link: bool = False


@dataclass
class MatchResult:
    """Classification of one source snapshot against the sink records."""
    new: List[Task] = field(default_factory=list)
    changed: List[Match] = field(default_factory=list)
    unchanged: List[Match] = field(default_factory=list)
    orphaned: List[SinkRecord] = field(default_factory=list)
    matched_records: List[SinkRecord] = field(default_factory=list)

    @property
    def pairs(self) -> List[Match]:
        return self.changed + self.unchanged

    def summary(self) -> str:
        return (f"{len(self.new)} new, {len(self.changed)} changed, "
                f"{len(self.unchanged)} unchanged, {len(self.orphaned)} orphaned")


def changed_fields(task: Task, record: SinkRecord, compare_title: bool = False) -> Dict[str, str]:
    """Return only the sink fields that differ between a task and its record."""
    fields = {}
    status = derive_status(task)
    if record.status != status:
        fields[FIELD_STATUS] = status
    if compare_title and record.title != task.title:
        fields[FIELD_TITLE] = task.title
    return fields


def index_by_title(records: List[SinkRecord]) -> Dict[str, SinkRecord]:
    """Index records by title, keeping the first one seen for duplicate titles."""
    index = {}
    for record in records:
        if record.title in index:
            logger.debug(f"Duplicate record title '{record.title}' (ID: {record.id}), "
                         f"matching uses {index[record.title].id}")
            continue
        index[record.title] = record
    return index


def match_tasks(task_lists: List[TaskList], records: List[SinkRecord],
                links: Optional[Dict[str, str]] = None) -> MatchResult:
    """Classify every task and every record of a snapshot.

    Args:
        task_lists: Source snapshot, lists with their tasks
        records: Current sink records; archived ones are ignored
        links: Optional task id -> record id table

    Returns:
        MatchResult where each task is new, changed or unchanged and each
        record is either orphaned or matched
    """
    pool = [r for r in records if not r.archived]
    by_id = {r.id: r for r in pool}
    tasks = list(iter_tasks(task_lists))
    result = MatchResult()

    # Records held by a live link are not available for title matching
    claimed = set()
    linked = {}
    if links is not None:
        for position, task in enumerate(tasks):
            record = by_id.get(links.get(task.id, ''))
            if record is not None and record.id not in claimed:
                linked[position] = record
                claimed.add(record.id)

    title_index = index_by_title([r for r in pool if r.id not in claimed])
    paired_ids = set(claimed)
    seen_ids = set()

    for position, task in enumerate(tasks):
        record = linked.get(position)
        by_link = record is not None
        if record is None:
            record = title_index.get(task.title)
            if record is not None and links is not None:
                # Each record backs at most one task once identities are tracked
                if record.id in paired_ids:
                    record = None
                else:
                    paired_ids.add(record.id)
        if record is None:
            result.new.append(task)
            continue

        paired_ids.add(record.id)
        if record.id in seen_ids:
            # Same title again: the first task paired with the record owns its status
            logger.debug(f"Task '{task.title}' in '{task.task_list_title}' shares record "
                         f"{record.id} with an earlier task, leaving it unchanged")
            fields = {}
        else:
            fields = changed_fields(task, record, compare_title=by_link)
        seen_ids.add(record.id)
        match = Match(task=task, record=record, fields=fields, by_link=by_link)
        if fields:
            result.changed.append(match)
        else:
            result.unchanged.append(match)

    task_titles = {task.title for task in tasks}
    for record in pool:
        if record.id in paired_ids or record.title in task_titles:
            result.matched_records.append(record)
        else:
            result.orphaned.append(record)

    logger.debug(f"Match result: {result.summary()}")
    return result
