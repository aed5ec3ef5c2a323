"""Persisted cross-reference between Google Task IDs and Notion page IDs."""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Dict, Iterable, Optional

logger = logging.getLogger(__name__)


class TaskLinkStore:
    """JSON-backed task id -> record id table.

    File layout:
        {"task_to_record": {...}, "record_to_task": {...}, "last_sync": "..."}
    """

    def __init__(self, links_file: Optional[str] = None):
        self.links_file = links_file
        self.mappings = self._create_empty_mappings()
        self.dirty = False

    @staticmethod
    def _create_empty_mappings() -> Dict:
        return {
            "task_to_record": {},   # google task id -> notion page id
            "record_to_task": {},   # notion page id -> google task id
            "last_sync": None
        }

    @property
    def task_to_record(self) -> Dict[str, str]:
        return self.mappings["task_to_record"]

    def load(self):
        """Load links from file; a missing or unreadable file starts fresh."""
        if not self.links_file or not os.path.exists(self.links_file):
            logger.info("No existing links file, starting fresh")
            return
        try:
            with open(self.links_file, 'r') as f:
                mappings = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to load links file {self.links_file}: {e}")
            return
        self.mappings = self._create_empty_mappings()
        self.mappings.update(mappings)
        logger.info(f"Loaded {len(self.task_to_record)} task link(s) from {self.links_file}")

    def save(self):
        """Write links to file, stamping the sync time."""
        if not self.links_file:
            return
        self.mappings["last_sync"] = datetime.now(timezone.utc).isoformat()
        try:
            with open(self.links_file, 'w') as f:
                json.dump(self.mappings, f, indent=2)
        except OSError as e:
            logger.error(f"Failed to save links to {self.links_file}: {e}")
            return
        self.dirty = False
        logger.debug(f"Saved links to {self.links_file}")

    def get(self, task_id: str) -> Optional[str]:
        return self.task_to_record.get(task_id)

    def link(self, task_id: str, record_id: str):
        """Link a task to a record, replacing any previous link of either side."""
        if self.task_to_record.get(task_id) == record_id:
            return
        self.unlink_task(task_id)
        self.unlink_record(record_id)
        self.mappings["task_to_record"][task_id] = record_id
        self.mappings["record_to_task"][record_id] = task_id
        self.dirty = True

    def unlink_task(self, task_id: str):
        record_id = self.mappings["task_to_record"].pop(task_id, None)
        if record_id is not None:
            self.mappings["record_to_task"].pop(record_id, None)
            self.dirty = True

    def unlink_record(self, record_id: str):
        task_id = self.mappings["record_to_task"].pop(record_id, None)
        if task_id is not None:
            self.mappings["task_to_record"].pop(task_id, None)
            self.dirty = True

    def prune(self, live_task_ids: Iterable[str]) -> int:
        """Drop links for tasks that are no longer in the source snapshot."""
        live = set(live_task_ids)
        stale = [task_id for task_id in self.task_to_record if task_id not in live]
        for task_id in stale:
            logger.debug(f"Removing stale link for task {task_id}")
            self.unlink_task(task_id)
        return len(stale)
