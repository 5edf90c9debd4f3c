import logging
import os
from pathlib import Path

from filelock import FileLock
from pydantic import BaseModel

logger = logging.getLogger(__name__)


def append_record(path: Path, record: BaseModel) -> bool:
    """
    Append one pydantic record as a JSON line.

    Review sessions running side by side may share an events file, so the
    write holds `<path>.lock` and is fsynced before the lock is released.

    Returns:
        False if the file could not be written; the session carries on.
    """
    path = Path(path)
    line = record.model_dump_json() + "\n"
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with FileLock(f"{path}.lock"):
            with open(path, "ab") as f:
                f.write(line.encode("utf-8"))
                f.flush()
                os.fsync(f.fileno())
    except OSError as e:
        logger.critical("Failed to append %s to %s: %s", type(record).__name__, path, e)
        return False
    return True
