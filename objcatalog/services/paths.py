"""Key/path helpers for mapping a flat key space onto folders.

Keys use ``/`` as the separator, never start with it, and folder keys end
with it:

    "test.txt"      -> dirname "",    basename "test.txt"
    "a/b/"          -> dirname "a",   basename "b"
    "a/b/test.txt"  -> dirname "a/b", basename "test.txt"
"""

from __future__ import annotations

SEP = "/"


def is_folder_key(key: str) -> bool:
    """Return True if the key names a folder marker."""
    return key.endswith(SEP)


def split_path(path: str) -> tuple[str, str]:
    """Split a key into its cached ``(dirname, basename)`` decomposition."""
    trimmed = path[:-1] if is_folder_key(path) else path
    dirname, _, basename = trimmed.rpartition(SEP)
    return dirname, basename


def join_path(dirname: str, basename: str, *, folder: bool = False) -> str:
    """Inverse of ``split_path``."""
    path = f"{dirname}{SEP}{basename}" if dirname else basename
    return f"{path}{SEP}" if folder else path


def normalize_dirname(dirname: str | None) -> str:
    """Canonical dirname: no leading or trailing separators, ``""`` for the root."""
    if not dirname:
        return ""
    return dirname.strip(SEP)


def folder_prefix(dirname: str | None) -> str:
    """Key prefix for entries directly under ``dirname`` (``""`` for the root)."""
    normalized = normalize_dirname(dirname)
    return f"{normalized}{SEP}" if normalized else ""


def ancestor_folders(key: str) -> list[str]:
    """Folder keys for every proper prefix of ``key``, shallowest first.

    ``"a/b/c.txt"`` implies ``["a/", "a/b/"]``; ``"a/b/"`` implies ``["a/"]``.
    """
    pieces = key.split(SEP)[:-1]
    folders = [SEP.join(pieces[: index + 1]) + SEP for index in range(len(pieces))]
    return [folder for folder in folders if folder != key]


def path_depth(path: str) -> int:
    """Number of segments in a key (``"a/"`` -> 1, ``"a/b/c.txt"`` -> 3)."""
    trimmed = path[:-1] if is_folder_key(path) else path
    return trimmed.count(SEP) + 1


def validate_basename(basename: str) -> str:
    """Reject names that cannot form a single key segment."""
    name = basename.strip()
    if not name:
        raise ValueError("Name must not be empty")
    if SEP in name:
        raise ValueError(f"Name must not contain {SEP!r}: {basename!r}")
    if name in {".", ".."}:
        raise ValueError(f"Invalid name: {basename!r}")
    return name


def is_within(path: str, folder_path: str) -> bool:
    """True if ``path`` is ``folder_path`` itself or lies beneath it."""
    return path.startswith(folder_path)
