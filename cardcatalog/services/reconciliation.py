"""
Reconciliation of parsed printings against the stored catalog.

Decides, before anything is written, whether each parsed printing is a new
row or an update of an existing one. Matching uses two keys:

1. external_id (the upstream id), the normal case
2. (set_code, collector_number), for when upstream rotated the id of a
   printing that is already stored

Matching on external_id alone would try to insert the rotated printing a
second time and violate the (set_code, collector_number) unique constraint.

Everything here is pure: the store is represented by an IdentityIndex
built from a projection of the stored rows.
"""

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field, replace
from datetime import datetime

from cardcatalog.models.card import CardPrinting
from cardcatalog.models.sync import SkippedRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class StoredIdentity:
    """Minimal projection of a stored printing used for matching."""

    local_id: uuid.UUID
    external_id: uuid.UUID
    set_code: str
    collector_number: str
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class NewPrinting:
    """No stored printing matches; insert a new row."""


@dataclass(frozen=True, slots=True)
class UpdateByExternalId:
    """A stored printing has the same external_id."""

    existing: StoredIdentity


@dataclass(frozen=True, slots=True)
class UpdateBySetNumber:
    """A stored printing has the same (set_code, collector_number) but another external_id."""

    existing: StoredIdentity


MatchResult = NewPrinting | UpdateByExternalId | UpdateBySetNumber


class IdentityIndex:
    """In-memory lookup of stored printings by both reconciliation keys."""

    def __init__(self, identities: Iterable[StoredIdentity] = ()) -> None:
        self._by_external_id: dict[uuid.UUID, StoredIdentity] = {}
        self._by_set_number: dict[tuple[str, str], StoredIdentity] = {}
        for identity in identities:
            self._by_external_id[identity.external_id] = identity
            self._by_set_number[(identity.set_code, identity.collector_number)] = identity

    def __len__(self) -> int:
        return len(self._by_external_id)

    def by_external_id(self, external_id: uuid.UUID) -> StoredIdentity | None:
        return self._by_external_id.get(external_id)

    def by_set_number(self, set_code: str, collector_number: str) -> StoredIdentity | None:
        return self._by_set_number.get((set_code, collector_number))


def resolve_match(printing: CardPrinting, index: IdentityIndex) -> MatchResult:
    """Classify one parsed printing against the stored identities."""
    existing = index.by_external_id(printing.external_id)
    if existing is not None:
        return UpdateByExternalId(existing)

    existing = index.by_set_number(printing.set_code, printing.collector_number)
    if existing is not None:
        return UpdateBySetNumber(existing)

    return NewPrinting()


@dataclass
class ReconciliationPlan:
    """
    Rows to write, split by operation.

    Updates carry the stored local_id and created_at. Inserts carry a
    freshly assigned local_id. moved lists the stored rows whose
    (set_code, collector_number) changes; they must vacate their old key
    before any update or insert can take it.
    """

    inserts: list[CardPrinting] = field(default_factory=list)
    updates: list[CardPrinting] = field(default_factory=list)
    moved: list[uuid.UUID] = field(default_factory=list)
    rotated_ids: int = 0
    duplicates: list[SkippedRecord] = field(default_factory=list)


def _collapse_snapshot_duplicates(
    printings: Iterable[CardPrinting],
) -> tuple[list[CardPrinting], list[SkippedRecord]]:
    """
    Keep one printing per external_id and per (set_code, collector_number).

    Later records win. Without this a snapshot that lists the same printing
    twice would reach the write stage as two inserts.
    """
    by_external_id: dict[uuid.UUID, CardPrinting] = {}
    by_set_number: dict[tuple[str, str], uuid.UUID] = {}
    duplicates: list[SkippedRecord] = []

    for printing in printings:
        superseded: list[CardPrinting] = []

        previous = by_external_id.pop(printing.external_id, None)
        if previous is not None:
            by_set_number.pop(previous.set_number_key, None)
            superseded.append(previous)

        clashing_id = by_set_number.pop(printing.set_number_key, None)
        if clashing_id is not None:
            superseded.append(by_external_id.pop(clashing_id))

        for replaced in superseded:
            duplicates.append(
                SkippedRecord(
                    name=replaced.name,
                    external_id=str(replaced.external_id),
                    reason="duplicate printing in snapshot, superseded by a later record",
                )
            )

        by_external_id[printing.external_id] = printing
        by_set_number[printing.set_number_key] = printing.external_id

    return list(by_external_id.values()), duplicates


def plan_reconciliation(
    printings: Iterable[CardPrinting],
    index: IdentityIndex,
) -> ReconciliationPlan:
    """
    Resolve every parsed printing to an insert or an update.

    External id matches are resolved across the whole snapshot before any
    set/number match, so the outcome does not depend on record order. A
    set/number match against a row already claimed by its own external id
    means that row is moving away; the record is then a new printing that
    takes over the vacated key.

    Args:
        printings: Parsed printings from one upstream snapshot
        index: Identities of the currently stored printings

    Returns:
        ReconciliationPlan with local ids assigned.
    """
    unique, duplicates = _collapse_snapshot_duplicates(printings)
    plan = ReconciliationPlan(duplicates=duplicates)

    matches = [resolve_match(printing, index) for printing in unique]
    claimed = {m.existing.local_id for m in matches if isinstance(m, UpdateByExternalId)}

    for printing, result in zip(unique, matches, strict=True):
        if isinstance(result, UpdateBySetNumber) and result.existing.local_id in claimed:
            result = NewPrinting()

        if isinstance(result, NewPrinting):
            plan.inserts.append(replace(printing, local_id=uuid.uuid4()))
            continue

        existing = result.existing
        if isinstance(result, UpdateBySetNumber):
            plan.rotated_ids += 1
            logger.debug(
                "%s (%s %s) external id rotated %s -> %s",
                printing.name,
                printing.set_code,
                printing.collector_number,
                existing.external_id,
                printing.external_id,
            )
        elif (existing.set_code, existing.collector_number) != printing.set_number_key:
            plan.moved.append(existing.local_id)

        plan.updates.append(
            replace(printing, local_id=existing.local_id, created_at=existing.created_at)
        )

    return plan
