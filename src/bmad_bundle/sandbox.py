"""Confine resolved paths to a designated root directory."""

from __future__ import annotations

import os
from pathlib import Path

from bmad_bundle.errors import PathEscapeError


def _root_prefix(root: Path) -> str:
    text = str(root)
    return text if text.endswith(os.sep) else text + os.sep


def confine(root: str | Path, candidate: str | Path) -> Path:
    """Resolve *candidate* against *root* and require it to lie strictly below it.

    Relative candidates are joined onto *root*; absolute ones are taken as-is.
    Both sides are fully resolved before the comparison, and the root is
    compared with a trailing separator so ``/a/bc`` never passes for ``/a/b``.
    """
    resolved_root = Path(root).expanduser().resolve()
    path = Path(candidate).expanduser()
    if not path.is_absolute():
        path = resolved_root / path
    resolved = path.resolve()
    if not str(resolved).startswith(_root_prefix(resolved_root)):
        raise PathEscapeError(str(resolved_root), str(resolved))
    return resolved
