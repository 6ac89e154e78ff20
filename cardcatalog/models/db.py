"""
SQLAlchemy ORM models for persistent storage.

Models mirror the dataclass models but add database persistence.
Variable-shape card data (colors, finishes, legalities, image references,
faces) lives in JSON columns; its shape is checked on assignment so a
malformed value fails at the store boundary instead of at read time.
"""

import uuid
from collections.abc import Mapping
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, validates

from cardcatalog.models.failure import StoreShapeError

REQUIRED_FACE_KEYS = ("name", "type_line", "image_uri")


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _check_string_list(column: str, value: Any) -> list[str] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise StoreShapeError(column, f"must be a list of strings or absent, got {value!r}")
    return value


def _check_string_map(column: str, value: Any) -> dict[str, str] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping) or not all(
        isinstance(k, str) and isinstance(v, str) for k, v in value.items()
    ):
        raise StoreShapeError(column, f"must be a string mapping or absent, got {value!r}")
    return dict(value)


def _check_faces(value: Any) -> list[dict[str, Any]] | None:
    if value is None:
        return None
    if not isinstance(value, list) or not value:
        raise StoreShapeError("faces", "must be a non-empty array or absent")
    for index, face in enumerate(value):
        if not isinstance(face, Mapping):
            raise StoreShapeError("faces", f"element {index} is not an object")
        missing = [key for key in REQUIRED_FACE_KEYS if not face.get(key)]
        if missing:
            raise StoreShapeError("faces", f"element {index} missing {', '.join(missing)}")
    return value


class CardPrintingDB(Base):
    """
    One printing of a card, synced from the upstream bulk dataset.

    Printings of the same card share group_id. external_id is unique but
    may be rotated upstream, so (set_code, collector_number) is also unique
    and serves as the fallback reconciliation key.
    """

    __tablename__ = "card_printings"
    __table_args__ = (
        UniqueConstraint("set_code", "collector_number", name="uq_printing_set_number"),
        Index("ix_card_printings_name_set_number", "name", "set_code", "collector_number"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id: Mapped[uuid.UUID] = mapped_column(Uuid, unique=True, index=True)
    group_id: Mapped[uuid.UUID] = mapped_column(Uuid, index=True)

    name: Mapped[str] = mapped_column(String(255), index=True)
    alternate_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    set_code: Mapped[str] = mapped_column(String(16))
    collector_number: Mapped[str] = mapped_column(String(32))
    rarity: Mapped[str] = mapped_column(String(32))

    # Gameplay fields
    mana_cost: Mapped[str | None] = mapped_column(String(255), nullable=True)
    mana_value: Mapped[float] = mapped_column(Float, default=0.0)
    type_line: Mapped[str] = mapped_column(String(255), default="")
    rule_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    power: Mapped[str | None] = mapped_column(String(16), nullable=True)
    toughness: Mapped[str | None] = mapped_column(String(16), nullable=True)

    # Semi-structured data stored as JSON
    colors: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    finishes: Mapped[list[str] | None] = mapped_column(JSON(none_as_null=True), nullable=True)
    legalities: Mapped[dict[str, str] | None] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    image_references: Mapped[dict[str, str] | None] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    faces: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )

    # Digital platform ids
    arena_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mtgo_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @validates("colors", "finishes")
    def _validate_string_list(self, key: str, value: Any) -> list[str] | None:
        return _check_string_list(key, value)

    @validates("legalities", "image_references")
    def _validate_string_map(self, key: str, value: Any) -> dict[str, str] | None:
        return _check_string_map(key, value)

    @validates("faces")
    def _validate_faces(self, _key: str, value: Any) -> list[dict[str, Any]] | None:
        return _check_faces(value)

    def __repr__(self) -> str:
        return (
            f"<CardPrintingDB(name={self.name}, set={self.set_code}, "
            f"number={self.collector_number})>"
        )
