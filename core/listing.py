"""
core/listing.py -- Filesystem helpers for browsing and the admin console.

Nothing here knows about users or permissions; the web layer combines these
raw entries with the access decisions from auth/access.py.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from core.models import DirectoryEntry

logger = logging.getLogger("piccolo.listing")

_KIB = 1024
_MIB = 1024 * 1024
_GIB = 1024 * 1024 * 1024
_TIB = 1024 * 1024 * 1024 * 1024


def format_file_size(size: int) -> str:
    """Human-readable size using the units shown in listings."""
    if size < 10000:
        return f"{size} bytes"
    if size < _MIB:
        return f"{size / _KIB:.2f} Kib"
    if size < _GIB:
        return f"{size / _MIB:.2f} Mib"
    if size < _TIB:
        return f"{size / _GIB:.2f} GiB"
    return f"{size / _TIB:.1f} TiB"


def resolve_resource(root: str | Path, http_path: str) -> Optional[Path]:
    """Map a logical web path onto the filesystem under root.

    Returns None when the resolved path escapes the root directory (e.g.
    "/../etc" or a symlink pointing outside). Callers treat None exactly like
    a missing file.
    """
    root_path = Path(root).resolve()
    relative = http_path.replace("\\", "/").lstrip("/")
    candidate = (root_path / relative).resolve()
    if candidate != root_path and root_path not in candidate.parents:
        return None
    return candidate


def logical_path(root: str | Path, resource: Path) -> str:
    """Canonical web path of a resource returned by resolve_resource().

    "" for the root itself, "/a/b" otherwise. Every decision about a request
    (privacy, listing links, login target) uses this form, never the raw
    request path, so "//private" or "/docs/../private" cannot slip past a
    prefix check.
    """
    relative = resource.relative_to(Path(root).resolve())
    return "" if relative == Path(".") else "/" + relative.as_posix()


def list_directory(path: str | Path) -> list[DirectoryEntry]:
    """Return the entries of a directory sorted by name.

    Raises OSError when the directory itself cannot be read. A failing stat on
    a single entry is logged and reported with size 0 and no timestamp.
    """
    entries: list[DirectoryEntry] = []
    with os.scandir(path) as it:
        for item in it:
            try:
                is_dir = item.is_dir()
                st = item.stat()
            except OSError:
                logger.warning("error reading entry info for %s", item.name)
                entries.append(DirectoryEntry(name=item.name, is_dir=False))
                continue
            entries.append(
                DirectoryEntry(
                    name=item.name,
                    is_dir=is_dir,
                    size=0 if is_dir else st.st_size,
                    modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                )
            )
    entries.sort(key=lambda e: e.name)
    return entries


def dir_tree(root: str | Path) -> list[str]:
    """All sub-directories of root as sorted, relative, forward-slash paths.

    Used by the new-permission form. Walks the whole tree synchronously and
    raises OSError on the first unreadable directory.
    """

    def _raise(exc: OSError) -> None:
        raise exc

    root_path = Path(root)
    directories: list[str] = []
    for current, dirnames, _files in os.walk(root_path, onerror=_raise):
        for name in dirnames:
            rel = (Path(current) / name).relative_to(root_path)
            directories.append(rel.as_posix())
    directories.sort()
    return directories
