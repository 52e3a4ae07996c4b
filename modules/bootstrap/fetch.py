"""File and module discovery helpers used by services and their extensions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from modules.bootstrap.errors import MissingParameter, PathNotFound

log = logging.getLogger("svc.fetch")

__all__ = ["FileEntry", "fetch_files", "fetch_modules", "fetch_templates", "list_files"]

PathLike = Union[str, Path]


@dataclass(frozen=True, slots=True)
class FileEntry:
    file_path: str
    root_path: str
    full_path: str
    content: Optional[str] = None


def list_files(
    root: PathLike, *, subfolders: bool = True, ends_with: str | None = ".py"
) -> list[str]:
    """Return file paths under ``root``, relative to it and sorted."""

    base = Path(root)
    if not base.is_dir():
        raise PathNotFound(str(root))
    pattern = "**/*" if subfolders else "*"
    results: list[str] = []
    for path in base.glob(pattern):
        if not path.is_file():
            continue
        if ends_with and not path.name.endswith(ends_with):
            continue
        results.append(path.relative_to(base).as_posix())
    return sorted(results)


def _entries_for(
    root: PathLike, *, subfolders: bool, ends_with: str | None, content: bool
) -> list[FileEntry]:
    base = Path(root)
    if not base.exists():
        raise PathNotFound(str(root))
    entries: list[FileEntry] = []
    for name in list_files(base, subfolders=subfolders, ends_with=ends_with):
        full = base / name
        entries.append(
            FileEntry(
                file_path=name,
                root_path=str(base),
                full_path=str(full),
                content=full.read_text(encoding="utf-8") if content else None,
            )
        )
    return entries


def fetch_files(
    paths: PathLike | Sequence[PathLike] | None,
    *,
    subfolders: bool = True,
    ends_with: str | None = ".py",
    content: bool = False,
    owner: str = "fetch_files",
) -> list[FileEntry]:
    """Collect files from one directory or a list of directories, in order."""

    if not paths:
        raise MissingParameter("paths", owner)
    roots: Iterable[PathLike]
    if isinstance(paths, (str, Path)):
        roots = [paths]
    else:
        roots = paths
    result: list[FileEntry] = []
    for root in roots:
        result.extend(
            _entries_for(root, subfolders=subfolders, ends_with=ends_with, content=content)
        )
    return result


def fetch_templates(
    paths: PathLike | Sequence[PathLike] | None,
    *,
    subfolders: bool = True,
    ends_with: str = ".html",
    owner: str = "fetch_templates",
) -> list[FileEntry]:
    return fetch_files(
        paths, subfolders=subfolders, ends_with=ends_with, content=True, owner=owner
    )


def fetch_modules(
    path: PathLike,
    *,
    owner: str,
    subfolders: bool = True,
    ends_with: str = ".py",
) -> list[str]:
    """List module files below ``path`` on behalf of ``owner``."""

    try:
        return list_files(path, subfolders=subfolders, ends_with=ends_with)
    except PathNotFound as exc:
        log.error("modules path not found", extra={"path": str(path), "owner": owner})
        raise PathNotFound(str(path), owner) from exc
    except OSError as exc:
        log.error("modules load failed", extra={"path": str(path), "owner": owner})
        raise PathNotFound(str(path), owner) from exc
