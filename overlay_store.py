# overlay_store.py
# Scrolly contributors, Copyright(C)2026, MIT License.
# -*- coding: utf-8 -*-
"""
Read-only asset stores for the presentation bundles.

Two stores are loaded at launch: the 'site' folder (overrides) and the 'lib'
folder (bundled libraries and defaults). OverlayStore joins them so that a
site file always shadows a lib file at the same path.
"""
import io
import os
import posixpath
import time
from typing import BinaryIO, Dict, List, NamedTuple, Optional, Protocol


class StoreMountError(RuntimeError):
    """A bundle folder could not be loaded at startup."""


class AssetInfo(NamedTuple):
    name: str
    size: int
    is_dir: bool
    mtime: float


class ByteStore(Protocol):
    """open / listdir / stat over slash-separated virtual paths."""

    def open(self, path: str) -> BinaryIO: ...

    def listdir(self, path: str) -> List[str]: ...

    def stat(self, path: str) -> AssetInfo: ...


def normalize_path(path: str) -> str:
    """Returns the canonical store key for a virtual path ('' is the root).

    Raises FileNotFoundError for paths that climb above the root.
    """
    cleaned = posixpath.normpath(path.replace("\\", "/").lstrip("/"))
    if cleaned == ".":
        return ""
    if cleaned == ".." or cleaned.startswith("../"):
        raise FileNotFoundError(path)
    return cleaned


class MemoryStore:
    """Immutable in-memory store built from a {path: bytes} mapping.

    Directories are implied by the file paths, the same way an embedded
    bundle exposes them.
    """

    def __init__(self, files: Dict[str, bytes], mtime: Optional[float] = None):
        self.mtime = time.time() if mtime is None else mtime
        self._files: Dict[str, bytes] = {}
        self._dirs: Dict[str, set] = {"": set()}
        for raw_path, data in files.items():
            path = normalize_path(raw_path)
            if not path:
                continue
            self._files[path] = bytes(data)
            parent, _, name = path.rpartition("/")
            self._dirs.setdefault(parent, set()).add(name)
            # register every ancestor directory
            while parent:
                grandparent, _, dirname = parent.rpartition("/")
                self._dirs.setdefault(grandparent, set()).add(dirname)
                self._dirs.setdefault(parent, set())
                parent = grandparent

    @classmethod
    def from_directory(cls, root: str) -> "MemoryStore":
        """Reads every file below root into memory."""
        files: Dict[str, bytes] = {}
        for dirpath, _dirnames, filenames in os.walk(root):
            for filename in filenames:
                full_path = os.path.join(dirpath, filename)
                rel_path = os.path.relpath(full_path, root).replace(os.sep, "/")
                with open(full_path, "rb") as fh:
                    files[rel_path] = fh.read()
        return cls(files)

    def __len__(self) -> int:
        return len(self._files)

    def open(self, path: str) -> BinaryIO:
        key = normalize_path(path)
        if key in self._files:
            return io.BytesIO(self._files[key])
        if key in self._dirs:
            raise IsADirectoryError(path)
        raise FileNotFoundError(path)

    def listdir(self, path: str) -> List[str]:
        key = normalize_path(path)
        if key in self._dirs:
            return sorted(self._dirs[key])
        if key in self._files:
            raise NotADirectoryError(path)
        raise FileNotFoundError(path)

    def stat(self, path: str) -> AssetInfo:
        key = normalize_path(path)
        name = key.rpartition("/")[2] or "."
        if key in self._files:
            return AssetInfo(name, len(self._files[key]), False, self.mtime)
        if key in self._dirs:
            return AssetInfo(name, 0, True, self.mtime)
        raise FileNotFoundError(path)


class OverlayStore:
    """Tries the primary store first, then the fallback store.

    Whatever the primary returns successfully is final for that path. Any
    OSError from the primary sends the identical call to the fallback, whose
    result (or error) is returned as-is. Listings are not merged.
    """

    def __init__(self, primary: ByteStore, fallback: ByteStore):
        self.primary = primary
        self.fallback = fallback

    def open(self, path: str) -> BinaryIO:
        try:
            return self.primary.open(path)
        except OSError:
            return self.fallback.open(path)

    def listdir(self, path: str) -> List[str]:
        try:
            return self.primary.listdir(path)
        except OSError:
            return self.fallback.listdir(path)

    def stat(self, path: str) -> AssetInfo:
        try:
            return self.primary.stat(path)
        except OSError:
            return self.fallback.stat(path)


def read_asset(store: ByteStore, path: str) -> bytes:
    with store.open(path) as fh:
        return fh.read()


def load_bundle(root: str) -> MemoryStore:
    """Loads a bundle folder into memory, or raises StoreMountError."""
    if not os.path.isdir(root):
        raise StoreMountError(f"Bundle folder not found: {root}")
    try:
        return MemoryStore.from_directory(root)
    except OSError as e:
        raise StoreMountError(f"Could not read bundle folder {root}: {e}") from e
