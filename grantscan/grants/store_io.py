"""Save, load and merge usage stores as JSON files.

The file format is the one the JavaScript grant tool writes, so stores can
be exchanged with it:

    {"User": {"table": "users", "isSelect": true, "isInsert": true,
              "isUpdate": false, "isDelete": false}}
"""
import json
from pathlib import Path
from typing import Iterable

import structlog

from ..analyzer.usage import UsageStore
from ..errors import StoreFormatError

logger = structlog.get_logger(__name__)


def save_store(store: UsageStore, path: str | Path):
    """Write a store to `path`, creating parent directories as needed."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(store.to_dict(), indent=2), encoding='utf-8')
    logger.info("store_saved", path=str(path), models=len(store))


def read_store(path: str | Path) -> UsageStore:
    """Read a store written by save_store.

    Raises:
        FileNotFoundError: If the file does not exist
        json.JSONDecodeError: If the file is not valid JSON
        StoreFormatError: If the JSON is not shaped like a saved store
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    data = json.loads(path.read_text(encoding='utf-8'))
    try:
        return UsageStore.from_dict(data)
    except StoreFormatError as e:
        raise StoreFormatError(f"{path}: {e}") from e


def merge_stores(paths: Iterable[str | Path]) -> UsageStore:
    """OR several saved stores into one, e.g. one per service sharing a database user."""
    merged = UsageStore()
    for path in paths:
        merged.merge(read_store(path))
    return merged
