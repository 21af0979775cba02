"""File-backed state storage."""

from wemp.storage.json_store import (
    JsonStore,
    ensure_dir,
    get_data_dir,
    read_json_file,
    write_json_file,
)

__all__ = ["JsonStore", "ensure_dir", "get_data_dir", "read_json_file", "write_json_file"]
