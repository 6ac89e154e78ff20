from cardcatalog.parsers.scryfall import (
    ParseResult,
    RecordParseError,
    load_bulk_printings,
    parse_card_faces,
    parse_printing,
    parse_records,
)

__all__ = [
    "ParseResult",
    "RecordParseError",
    "load_bulk_printings",
    "parse_card_faces",
    "parse_printing",
    "parse_records",
]
