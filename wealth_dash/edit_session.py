"""Transactional editing of a local copy of persisted time-series rows.

A :class:`TabularEditSession` holds the canonical rows last read from the
backing store together with a locally editable view of them.  Every row is
tracked in a single arena keyed by its id and tagged with a :class:`RowState`:

* ``CLEAN``: unchanged since the session was seeded or last committed.
* ``DIRTY``: a persisted row whose fields were edited.
* ``NEW``: a draft created in the session; it carries a :class:`TemporaryId`.
* ``PENDING_DELETION``: a persisted row removed from view, deleted on commit.

Drafts are the only rows with temporary ids, so deleting a draft simply
forgets it and a temporary id can never reach the delete callback.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Optional, Protocol, TypeVar, Union

from .models import PersistedId, RecordId, TemporaryId

logger = logging.getLogger(__name__)


class EditableRecord(Protocol):
    id: RecordId


R = TypeVar("R", bound=EditableRecord)
P = TypeVar("P")


class RowState(Enum):
    CLEAN = "clean"
    DIRTY = "dirty"
    NEW = "new"
    PENDING_DELETION = "pending_deletion"


_UNSAVED = (RowState.DIRTY, RowState.NEW)


@dataclass
class TrackedRow(Generic[R]):
    record: R
    state: RowState


@dataclass
class CommitFailure:
    """A save or delete that raised during :meth:`TabularEditSession.commit`."""

    record_id: RecordId
    operation: str
    error: Exception


@dataclass
class CommitResult:
    saved: list[PersistedId] = field(default_factory=list)
    deleted: list[PersistedId] = field(default_factory=list)
    failures: list[CommitFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def fields_changed(previous: Any, current: Any) -> bool:
    """Default change detection: dataclass equality ignoring the id."""

    return replace(current, id=previous.id) != previous


def _identity(record: Any) -> Any:
    return record


class TabularEditSession(Generic[R, P]):
    """Locally edited copy of a persisted list of records.

    Args:
        canonical: Records as last read from the backing store.  Every record
            must carry a :class:`PersistedId` and ids must be unique.
        draft_factory: Builds a blank record with a fresh :class:`TemporaryId`.
        save: Persists one record (after ``to_persisted``) and returns the id
            the store assigned to it.
        delete: Removes one persisted record from the store.
        to_persisted: Translates a session record into what ``save`` expects.
        changed: Decides whether an incoming snapshot row differs from the
            row currently held by the session.

    The session never reseeds itself after :meth:`commit`; callers refresh the
    canonical list from the store and pass it to :meth:`reseed`.
    """

    def __init__(
        self,
        canonical: Iterable[R],
        *,
        draft_factory: Callable[[], R],
        save: Callable[[P], Any],
        delete: Callable[[PersistedId], None],
        to_persisted: Callable[[R], P] = _identity,
        changed: Callable[[R, R], bool] = fields_changed,
    ) -> None:
        self._draft_factory = draft_factory
        self._save = save
        self._delete = delete
        self._to_persisted = to_persisted
        self._changed = changed
        self._canonical: list[R] = []
        self._rows: dict[RecordId, TrackedRow[R]] = {}
        self._order: list[RecordId] = []
        self._selected: set[RecordId] = set()
        self._discarded: set[TemporaryId] = set()
        self.reseed(canonical)

    # ------------------------------------------------------------------
    # Derived view state
    # ------------------------------------------------------------------
    @property
    def local_entries(self) -> list[R]:
        return [self._rows[record_id].record for record_id in self._order]

    @property
    def canonical_entries(self) -> list[R]:
        return list(self._canonical)

    @property
    def dirty_ids(self) -> set[RecordId]:
        return {record_id for record_id, row in self._rows.items() if row.state in _UNSAVED}

    @property
    def deleted_ids(self) -> set[PersistedId]:
        return {
            record_id
            for record_id, row in self._rows.items()
            if row.state is RowState.PENDING_DELETION
        }

    @property
    def dirty_count(self) -> int:
        return len(self.dirty_ids)

    @property
    def deleted_count(self) -> int:
        return len(self.deleted_ids)

    @property
    def has_unsaved_changes(self) -> bool:
        return any(row.state is not RowState.CLEAN for row in self._rows.values())

    @property
    def selected_ids(self) -> set[RecordId]:
        return set(self._selected)

    def state_of(self, record_id: RecordId) -> Optional[RowState]:
        row = self._rows.get(record_id)
        return row.state if row else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def reseed(self, canonical: Iterable[R]) -> None:
        """Replace the canonical snapshot, discarding every local edit."""

        records = list(canonical)
        seen: set[RecordId] = set()
        for record in records:
            if not isinstance(record.id, PersistedId):
                raise ValueError(f"Canonical record {record.id} has no persisted id")
            if record.id in seen:
                raise ValueError(f"Duplicate record id {record.id}")
            seen.add(record.id)
        self._canonical = records
        self._restore_canonical()

    def cancel(self) -> None:
        """Drop local edits, drafts and deletions and clear the selection."""

        if self.has_unsaved_changes:
            logger.debug("Discarding %d dirty and %d deleted rows", self.dirty_count, self.deleted_count)
        self._restore_canonical()

    def _restore_canonical(self) -> None:
        self._rows = {record.id: TrackedRow(record, RowState.CLEAN) for record in self._canonical}
        self._order = [record.id for record in self._canonical]
        self._selected = set()
        self._discarded = set()

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------
    def add_draft(self) -> R:
        draft = self._new_draft()
        self._order.insert(0, draft.id)
        return draft

    def add_draft_batch(self, count: int) -> list[R]:
        if count <= 0:
            return []
        drafts = [self._new_draft() for _ in range(count)]
        self._order[:0] = [draft.id for draft in drafts]
        return drafts

    def _new_draft(self) -> R:
        draft = self._draft_factory()
        if not isinstance(draft.id, TemporaryId):
            raise ValueError("Draft records must carry a temporary id")
        if draft.id in self._rows:
            raise ValueError(f"Duplicate record id {draft.id}")
        self._rows[draft.id] = TrackedRow(draft, RowState.NEW)
        return draft

    def update_from_grid_snapshot(self, next_rows: Iterable[R]) -> list[RecordId]:
        """Merge the rows currently shown by the grid into the session.

        Rows whose fields differ from the held copy, and rows with ids the
        session has not seen, are marked as unsaved.  Unchanged rows keep the
        held copy.  The snapshot order becomes the visible order; visible rows
        the snapshot does not mention stay in view after it.  Rows pending
        deletion are not resurrected, and neither are drafts that were deleted
        or saved under a new id since the last reseed or cancel.

        Returns the ids that changed.
        """

        changed_ids: list[RecordId] = []
        snapshot_order: list[RecordId] = []
        for row in next_rows:
            tracked = self._rows.get(row.id)
            if row.id in self._discarded:
                logger.debug("Ignoring snapshot row %s for a discarded draft", row.id)
                continue
            if tracked is None:
                state = RowState.NEW if isinstance(row.id, TemporaryId) else RowState.DIRTY
                self._rows[row.id] = TrackedRow(row, state)
                changed_ids.append(row.id)
            elif tracked.state is RowState.PENDING_DELETION:
                logger.debug("Ignoring snapshot row %s pending deletion", row.id)
                continue
            elif self._changed(tracked.record, row):
                tracked.record = row
                if tracked.state is RowState.CLEAN:
                    tracked.state = RowState.DIRTY
                changed_ids.append(row.id)
            if row.id not in snapshot_order:
                snapshot_order.append(row.id)

        mentioned = set(snapshot_order)
        self._order = snapshot_order + [record_id for record_id in self._order if record_id not in mentioned]
        return changed_ids

    def delete_rows(self, rows: Iterable[Union[R, RecordId]]) -> list[RecordId]:
        """Remove rows from view; persisted rows are deleted on commit.

        Accepts records or ids.  Returns the ids removed from view.
        """

        removed: list[RecordId] = []
        for row in rows:
            record_id = row if isinstance(row, (TemporaryId, PersistedId)) else row.id
            tracked = self._rows.get(record_id)
            if tracked is None or tracked.state is RowState.PENDING_DELETION:
                continue
            if isinstance(record_id, TemporaryId):
                del self._rows[record_id]
                self._discarded.add(record_id)
            else:
                tracked.state = RowState.PENDING_DELETION
            removed.append(record_id)

        if removed:
            gone = set(removed)
            self._order = [record_id for record_id in self._order if record_id not in gone]
            self._selected -= gone
        return removed

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------
    def select(self, record_ids: Iterable[RecordId]) -> None:
        visible = set(self._order)
        self._selected = {record_id for record_id in record_ids if record_id in visible}

    def clear_selection(self) -> None:
        self._selected = set()

    def delete_selected(self) -> list[RecordId]:
        selected = [record_id for record_id in self._order if record_id in self._selected]
        removed = self.delete_rows(selected)
        self.clear_selection()
        return removed

    # ------------------------------------------------------------------
    # Commit
    # ------------------------------------------------------------------
    def commit(self) -> CommitResult:
        """Issue one delete per pending deletion and one save per unsaved row.

        Deletes run first so that a draft saved under the id of a row deleted
        in the same session is not removed again.  Edited persisted rows are
        saved before drafts; a draft whose stored id matches one of them is
        saved last and replaces it in view.  Each call is independent: a
        failing call is recorded in the result and its row keeps its state,
        so the next commit retries it.
        """

        result = CommitResult()

        pending = [record_id for record_id, row in self._rows.items() if row.state is RowState.PENDING_DELETION]
        for record_id in pending:
            try:
                self._delete(record_id)
            except Exception as exc:
                logger.warning("Deleting record %s failed: %s", record_id, exc)
                result.failures.append(CommitFailure(record_id, "delete", exc))
                continue
            del self._rows[record_id]
            result.deleted.append(record_id)

        unsaved = [
            (record_id, self._rows[record_id])
            for record_id in self._order
            if self._rows[record_id].state in _UNSAVED
        ]
        # Stable: persisted rows keep their visible order, drafts follow.
        unsaved.sort(key=lambda item: isinstance(item[0], TemporaryId))
        for record_id, tracked in unsaved:
            if self._rows.get(record_id) is not tracked or tracked.state not in _UNSAVED:
                continue
            try:
                stored_id = self._save(self._to_persisted(tracked.record))
                persisted_id = _resolve_persisted_id(record_id, stored_id)
            except Exception as exc:
                logger.warning("Saving record %s failed: %s", record_id, exc)
                result.failures.append(CommitFailure(record_id, "save", exc))
                continue
            self._settle(record_id, tracked, persisted_id)
            if persisted_id not in result.saved:
                result.saved.append(persisted_id)

        logger.info(
            "Committed edit session: %d saved, %d deleted, %d failed",
            len(result.saved),
            len(result.deleted),
            len(result.failures),
        )
        return result

    def _settle(self, record_id: RecordId, tracked: TrackedRow[R], persisted_id: PersistedId) -> None:
        tracked.state = RowState.CLEAN
        if persisted_id == record_id:
            return

        # A row already holding the stored id is superseded by the saved one.
        self._rows.pop(persisted_id, None)
        del self._rows[record_id]
        if isinstance(record_id, TemporaryId):
            self._discarded.add(record_id)
        tracked.record = replace(tracked.record, id=persisted_id)
        self._rows[persisted_id] = tracked
        self._order = [
            persisted_id if current == record_id else current
            for current in self._order
            if current != persisted_id
        ]
        if record_id in self._selected:
            self._selected.discard(record_id)
            self._selected.add(persisted_id)


def _resolve_persisted_id(record_id: RecordId, stored_id: Any) -> PersistedId:
    if isinstance(stored_id, PersistedId):
        return stored_id
    if stored_id is not None:
        return PersistedId(str(stored_id))
    if isinstance(record_id, PersistedId):
        return record_id
    raise ValueError(f"Saving draft {record_id} returned no persisted id")
