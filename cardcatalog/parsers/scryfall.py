"""
Scryfall bulk record parser.

Turns raw bulk-data records into CardPrinting objects.

Scryfall's record shape varies by layout:
- Single-faced cards: every field at the top level.
- Transform / modal cards: aggregate fields at the top level, per-face
  fields and images inside card_faces.
- Reversible cards: gameplay fields (and sometimes oracle_id) only inside
  card_faces, nothing at the top level.

Every gameplay field is therefore read through _field_with_fallback, which
checks the top level first and then card_faces[0].

Bulk data: https://scryfall.com/docs/api/bulk-data
"""

import json
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from cardcatalog.models.card import CardPrinting, Face, pick_image
from cardcatalog.models.sync import SkippedRecord

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 5000


class RecordParseError(ValueError):
    """A single record cannot become a printing. Never fatal for a run."""


@dataclass
class ParseResult:
    """Printings parsed from a bulk file plus the records that were skipped."""

    printings: list[CardPrinting] = field(default_factory=list)
    skipped: list[SkippedRecord] = field(default_factory=list)


def _first_face(record: dict[str, Any]) -> dict[str, Any] | None:
    faces = record.get("card_faces")
    if isinstance(faces, list) and faces and isinstance(faces[0], dict):
        return faces[0]
    return None


def _field_with_fallback(record: dict[str, Any], key: str, default: Any = None) -> Any:
    """Read a field from the top level, falling back to the first card face."""
    value = record.get(key)
    if value is not None:
        return value
    face = _first_face(record)
    if face is not None and face.get(key) is not None:
        return face[key]
    return default


def _string_tuple(values: Any) -> tuple[str, ...]:
    if not isinstance(values, list):
        return ()
    return tuple(v for v in values if isinstance(v, str))


def _string_map(values: Any) -> dict[str, str]:
    if not isinstance(values, dict):
        return {}
    return {k: v for k, v in values.items() if isinstance(k, str) and isinstance(v, str)}


def _optional_int(value: Any) -> int | None:
    return value if isinstance(value, int) and not isinstance(value, bool) else None


def parse_card_faces(record: dict[str, Any]) -> tuple[Face, ...]:
    """
    Build the faces of a multi-faced record.

    Faces missing a name, a type line, or any usable image URL are dropped;
    the rest of the record is unaffected.

    Returns:
        Tuple of faces, empty for single-faced records.
    """
    raw_faces = record.get("card_faces")
    if not isinstance(raw_faces, list):
        return ()

    faces: list[Face] = []
    for raw in raw_faces:
        if not isinstance(raw, dict):
            continue

        name = raw.get("name")
        type_line = raw.get("type_line")
        image_uri = pick_image(_string_map(raw.get("image_uris")))
        if not name or not type_line or not image_uri:
            continue

        faces.append(
            Face(
                name=name,
                type_line=type_line,
                image_uri=image_uri,
                mana_cost=raw.get("mana_cost"),
                rule_text=raw.get("oracle_text"),
                power=raw.get("power"),
                toughness=raw.get("toughness"),
                colors=_string_tuple(raw.get("colors")),
            )
        )

    return tuple(faces)


def _parse_uuid(value: Any, label: str) -> uuid.UUID:
    if not value:
        raise RecordParseError(f"missing {label}")
    try:
        return uuid.UUID(str(value))
    except ValueError as e:
        raise RecordParseError(f"invalid {label} {value!r}") from e


def parse_printing(record: dict[str, Any]) -> CardPrinting:
    """
    Parse one Scryfall record into a CardPrinting.

    Raises:
        RecordParseError: If identity data is missing or the record would
            carry neither a top-level image nor a usable face.
    """
    layout = record.get("layout", "unknown")

    group_value = _field_with_fallback(record, "oracle_id")
    if not group_value:
        raise RecordParseError(f"missing oracle_id in card and faces (layout: {layout})")

    external_id = _parse_uuid(record.get("id"), "id")
    group_id = _parse_uuid(group_value, "oracle_id")

    name = record.get("name")
    set_code = record.get("set")
    collector_number = record.get("collector_number")
    if not name or not set_code or not collector_number:
        raise RecordParseError("missing name, set or collector_number")

    faces = parse_card_faces(record)
    image_references: dict[str, str] | None = None
    if not faces:
        image_references = _string_map(_field_with_fallback(record, "image_uris")) or None
        if image_references is None:
            raise RecordParseError(f"no image references on card or faces (layout: {layout})")

    colors = record.get("colors")
    if colors is None:
        colors = record.get("color_identity")

    finishes = record.get("finishes")

    return CardPrinting(
        external_id=external_id,
        group_id=group_id,
        name=name,
        alternate_name=record.get("flavor_name"),
        set_code=str(set_code).lower(),
        collector_number=str(collector_number),
        rarity=record.get("rarity", ""),
        mana_cost=_field_with_fallback(record, "mana_cost"),
        mana_value=float(_field_with_fallback(record, "cmc", 0.0)),
        type_line=_field_with_fallback(record, "type_line", ""),
        rule_text=_field_with_fallback(record, "oracle_text"),
        power=_field_with_fallback(record, "power"),
        toughness=_field_with_fallback(record, "toughness"),
        colors=_string_tuple(colors),
        finishes=_string_tuple(finishes) if isinstance(finishes, list) else None,
        legalities=_string_map(record.get("legalities")),
        image_references=image_references,
        faces=faces,
        arena_id=_optional_int(record.get("arena_id")),
        mtgo_id=_optional_int(record.get("mtgo_id")),
    )


def parse_records(records: Iterable[Any], total: int | None = None) -> ParseResult:
    """
    Parse raw records, collecting failures instead of raising.

    A record that fails for any reason is recorded as a SkippedRecord with
    its name, id and the reason, and parsing continues.
    """
    result = ParseResult()

    for processed, record in enumerate(records, start=1):
        if processed % PROGRESS_INTERVAL == 0:
            logger.info("Parsed %d / %s records", processed, total if total is not None else "?")

        if not isinstance(record, dict):
            result.skipped.append(SkippedRecord("Unknown", "Unknown", "record is not an object"))
            continue

        try:
            result.printings.append(parse_printing(record))
        except (RecordParseError, TypeError, ValueError, AttributeError) as e:
            skipped = SkippedRecord(
                name=str(record.get("name") or "Unknown"),
                external_id=str(record.get("id") or "Unknown"),
                reason=str(e),
            )
            logger.debug("Skipping %s [%s]: %s", skipped.name, skipped.external_id, skipped.reason)
            result.skipped.append(skipped)

    return result


def load_bulk_printings(bulk_data_path: Path) -> ParseResult:
    """
    Parse a downloaded bulk JSON file.

    Args:
        bulk_data_path: Path to downloaded Scryfall bulk JSON

    Returns:
        ParseResult with parsed printings and skipped records
    """
    with open(bulk_data_path, encoding="utf-8") as f:
        records = json.load(f)

    if not isinstance(records, list):
        raise ValueError(f"Bulk file {bulk_data_path} does not contain a JSON array")

    return parse_records(records, total=len(records))
