import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from cardcatalog.config import IMAGE_PREFERENCE


def pick_image(image_uris: Mapping[str, str] | None) -> str | None:
    """Pick one URL from a size -> URL mapping, by IMAGE_PREFERENCE order."""
    if not image_uris:
        return None
    for key in IMAGE_PREFERENCE:
        url = image_uris.get(key)
        if url:
            return url
    return None


@dataclass(frozen=True, slots=True)
class Face:
    """
    One side of a multi-faced printing.

    Attributes:
        name: Face name (e.g., "Insectile Aberration")
        type_line: Face type line
        image_uri: Single representative image URL for this face
        mana_cost: Mana cost in brace notation, None for most back faces
        rule_text: Rules text, None for faces without a text box
        power: Free-form power ("*", "1+*"), None for non-creatures
        toughness: Free-form toughness, None for non-creatures
        colors: Color codes (W, U, B, R, G)
    """

    name: str
    type_line: str
    image_uri: str
    mana_cost: str | None = None
    rule_text: str | None = None
    power: str | None = None
    toughness: str | None = None
    colors: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "mana_cost": self.mana_cost,
            "type_line": self.type_line,
            "rule_text": self.rule_text,
            "power": self.power,
            "toughness": self.toughness,
            "image_uri": self.image_uri,
            "colors": list(self.colors),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Face":
        return cls(
            name=str(data["name"]),
            type_line=str(data["type_line"]),
            image_uri=str(data["image_uri"]),
            mana_cost=_opt_str(data.get("mana_cost")),
            rule_text=_opt_str(data.get("rule_text")),
            power=_opt_str(data.get("power")),
            toughness=_opt_str(data.get("toughness")),
            colors=tuple(str(c) for c in data.get("colors") or ()),
        )


def _opt_str(value: Any) -> str | None:
    return None if value is None else str(value)


@dataclass(frozen=True, slots=True)
class CardPrinting:
    """
    One physical printing of a card.

    Printings of the same logical card share a group_id. external_id is the
    upstream id and may be rotated by the provider for the same printing;
    (set_code, collector_number) identifies the printing within a release.

    A printing carries either image_references (single-faced) or a
    non-empty faces tuple (multi-faced), never both.

    local_id and created_at are None until the printing has been
    reconciled against the store.
    """

    external_id: uuid.UUID
    group_id: uuid.UUID
    name: str
    set_code: str
    collector_number: str
    rarity: str
    type_line: str = ""
    mana_value: float = 0.0
    mana_cost: str | None = None
    rule_text: str | None = None
    power: str | None = None
    toughness: str | None = None
    alternate_name: str | None = None
    colors: tuple[str, ...] = ()
    finishes: tuple[str, ...] | None = None
    legalities: dict[str, str] = field(default_factory=dict)
    image_references: dict[str, str] | None = None
    faces: tuple[Face, ...] = ()
    arena_id: int | None = None
    mtgo_id: int | None = None
    local_id: uuid.UUID | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_multi_faced(self) -> bool:
        return bool(self.faces)

    @property
    def set_number_key(self) -> tuple[str, str]:
        """Fallback reconciliation key."""
        return (self.set_code, self.collector_number)

    def primary_image(self) -> str | None:
        """Display image: top-level reference, or the front face for multi-faced printings."""
        if self.faces:
            return self.faces[0].image_uri
        return pick_image(self.image_references)
