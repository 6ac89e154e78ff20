from cardcatalog.db.database import get_session, init_db
from cardcatalog.db.operations import (
    apply_printing,
    collect_catalog_stats,
    get_printing,
    insert_printings,
    load_identity_index,
    park_moved_printings,
    printing_to_row,
    row_to_printing,
    update_printings,
    write_plan,
)

__all__ = [
    "apply_printing",
    "collect_catalog_stats",
    "get_printing",
    "get_session",
    "init_db",
    "insert_printings",
    "load_identity_index",
    "park_moved_printings",
    "printing_to_row",
    "row_to_printing",
    "update_printings",
    "write_plan",
]
