"""Registry of rendered prompt packs, addressable by a digest of their path."""

from __future__ import annotations

import hashlib
import threading
from collections import OrderedDict
from pathlib import Path

OUTPUT_URI_PREFIX = "bmad://output/"


def output_id_for_path(path: str | Path) -> str:
    absolute = str(Path(path).expanduser().resolve())
    return hashlib.sha1(absolute.encode("utf-8")).hexdigest()


def output_uri(output_id: str) -> str:
    return f"{OUTPUT_URI_PREFIX}{output_id}"


class OutputRegistry:
    """Maps output ids to absolute paths for the life of the host process.

    With a positive capacity the registry keeps the most recently used
    entries and drops the oldest; a capacity of 0 never evicts.
    """

    def __init__(self, capacity: int = 0) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        self._capacity = capacity
        self._paths: OrderedDict[str, Path] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def register(self, path: str | Path) -> str:
        resolved = Path(path).expanduser().resolve()
        output_id = output_id_for_path(resolved)
        with self._lock:
            self._paths[output_id] = resolved
            self._paths.move_to_end(output_id)
            if self._capacity:
                while len(self._paths) > self._capacity:
                    self._paths.popitem(last=False)
        return output_id

    def resolve(self, output_id: str) -> Path | None:
        with self._lock:
            path = self._paths.get(output_id)
            if path is not None:
                self._paths.move_to_end(output_id)
            return path

    def read(self, output_id: str) -> str | None:
        path = self.resolve(output_id)
        if path is None or not path.is_file():
            return None
        return path.read_text(encoding="utf-8")
