"""
Apply a match result to the sink.

Writes happen in three strictly sequential phases: creations, then
archivals, then status updates. Every item is attempted on its own; a failed
write is logged and recorded, and the remaining items still run. Only an
authorization failure stops the cycle.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from sync_errors import AuthorizationError, failure_kind
from task_links import TaskLinkStore
from task_matcher import MatchResult
from task_models import FIELD_TITLE, SinkRecord, build_record_fields

logger = logging.getLogger(__name__)

ACTION_CREATE = 'create'
ACTION_ARCHIVE = 'archive'
ACTION_UPDATE = 'update'


@dataclass
class ItemResult:
    """Outcome of one sink write."""
    action: str
    title: str
    record_id: Optional[str] = None
    ok: bool = True
    skipped: bool = False
    error_kind: Optional[str] = None
    error: Optional[str] = None


@dataclass
class CycleReport:
    """Per-item results of one reconciliation cycle."""
    results: List[ItemResult] = field(default_factory=list)
    aborted: bool = False

    def add(self, result: ItemResult):
        self.results.append(result)

    def count(self, action: str, ok: bool = True) -> int:
        return sum(1 for r in self.results
                   if r.action == action and r.ok == ok and not r.skipped)

    @property
    def failures(self) -> List[ItemResult]:
        return [r for r in self.results if not r.ok]

    @property
    def writes(self) -> int:
        return sum(1 for r in self.results if r.ok and not r.skipped)

    def summary(self) -> str:
        text = (f"{self.count(ACTION_CREATE)} created, "
                f"{self.count(ACTION_ARCHIVE)} archived, "
                f"{self.count(ACTION_UPDATE)} updated, "
                f"{len(self.failures)} failed")
        skipped = sum(1 for r in self.results if r.skipped)
        if skipped:
            text += f", {skipped} skipped (dry-run)"
        if self.aborted:
            text += " [ABORTED]"
        return text


class Reconciler:
    """Issues create/archive/update calls for a match result."""

    def __init__(self, sink, links: Optional[TaskLinkStore] = None, dry_run: bool = False):
        self.sink = sink
        self.links = links
        self.dry_run = dry_run

    def apply(self, match: MatchResult) -> CycleReport:
        """Run the three write phases and return the per-item report.

        Raises:
            AuthorizationError: the sink rejected the credentials; the report
                gathered so far is attached as ``exc.report``
        """
        report = CycleReport()
        try:
            self._record_pairs(match)
            self._create_phase(match, report)
            self._archive_phase(match, report)
            self._update_phase(match, report)
        except AuthorizationError as e:
            report.aborted = True
            e.report = report
            raise
        return report

    def _record_pairs(self, match: MatchResult):
        """Remember title-matched pairs so later renames keep their record."""
        if self.links is None or self.dry_run:
            return
        for pair in match.pairs:
            self.links.link(pair.task.id, pair.record.id)

    def _write(self, report: CycleReport, action: str, title: str, record_id: Optional[str],
               call) -> Tuple[bool, Optional[SinkRecord]]:
        """Run one sink call, turning any failure except authorization into a result."""
        try:
            record = call()
        except AuthorizationError:
            logger.error(f"Authorization failed while trying to {action} '{title}'")
            raise
        except Exception as e:
            kind = failure_kind(e)
            target = f" (ID: {record_id})" if record_id else ""
            logger.error(f"Failed to {action} Notion record '{title}'{target} [{kind}]: {e}")
            report.add(ItemResult(action=action, title=title, record_id=record_id, ok=False,
                                  error_kind=kind, error=str(e)))
            return False, None
        if record is not None:
            record_id = record.id
        report.add(ItemResult(action=action, title=title, record_id=record_id))
        return True, record

    def _create_phase(self, match: MatchResult, report: CycleReport):
        for task in match.new:
            fields = build_record_fields(task)
            if self.dry_run:
                logger.info(f"[DRY-RUN] Would create Notion record: '{task.title}' "
                            f"(list: '{task.task_list_title}', status: {fields['status']})")
                report.add(ItemResult(action=ACTION_CREATE, title=task.title, skipped=True))
                continue

            ok, record = self._write(report, ACTION_CREATE, task.title, None,
                                     lambda: self.sink.create_record(fields))
            if not ok:
                continue
            logger.info(f"Created Notion record: '{task.title}'")
            if self.links is not None and record is not None:
                self.links.link(task.id, record.id)

    def _archive_phase(self, match: MatchResult, report: CycleReport):
        for record in match.orphaned:
            if self.dry_run:
                logger.info(f"[DRY-RUN] Would archive Notion record: '{record.title}' (ID: {record.id})")
                report.add(ItemResult(action=ACTION_ARCHIVE, title=record.title,
                                      record_id=record.id, skipped=True))
                continue

            ok, _ = self._write(report, ACTION_ARCHIVE, record.title, record.id,
                                lambda: self.sink.archive_record(record.id))
            if not ok:
                continue
            logger.info(f"Archived Notion record: '{record.title}'")
            if self.links is not None:
                self.links.unlink_record(record.id)

    def _update_phase(self, match: MatchResult, report: CycleReport):
        for pair in match.changed:
            record = pair.record
            changes = ', '.join(f"{name}={value!r}" for name, value in pair.fields.items())
            if self.dry_run:
                logger.info(f"[DRY-RUN] Would update Notion record: '{record.title}' ({changes})")
                report.add(ItemResult(action=ACTION_UPDATE, title=pair.task.title,
                                      record_id=record.id, skipped=True))
                continue

            ok, _ = self._write(report, ACTION_UPDATE, pair.task.title, record.id,
                                lambda: self.sink.update_record(record.id, pair.fields))
            if not ok:
                continue
            if FIELD_TITLE in pair.fields:
                logger.info(f"Renamed Notion record: '{record.title}' -> '{pair.task.title}'")
            logger.info(f"Updated Notion record: '{pair.task.title}' ({changes})")
