"""
Storage Backend Module

Provides abstract line-oriented storage interface and implementations for
in-memory (testing) and plain files (persistence). Every collection is one
named file of text lines; whole-file writes go through a temporary file that
is atomically renamed over the target.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Union
from pathlib import Path, PurePosixPath
import os
import tempfile
import threading


class StorageInterface(ABC):
    """Abstract interface for storage backends"""

    @abstractmethod
    def read_lines(self, name: str) -> List[str]:
        """Read all lines of a file; a missing file reads as empty"""
        pass

    @abstractmethod
    def write_lines(self, name: str, lines: List[str]) -> None:
        """Replace the whole file with the given lines"""
        pass

    @abstractmethod
    def append_line(self, name: str, line: str) -> None:
        """Append one line to a file, creating it if needed"""
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        """Check if a file exists"""
        pass

    @abstractmethod
    def delete(self, name: str) -> bool:
        """Delete a file"""
        pass

    @abstractmethod
    def list_names(self, prefix: str = "") -> List[str]:
        """List file names below a directory prefix, sorted"""
        pass

    @abstractmethod
    def clear(self) -> None:
        """Delete every file"""
        pass

    def close(self) -> None:
        """Close storage (default no-op)"""
        pass


def _normalize(name: str) -> str:
    """Normalize a storage name to a relative posix path"""
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts or not path.parts:
        raise ValueError(f"Invalid storage name: {name!r}")
    return str(path)


class InMemoryStorage(StorageInterface):
    """In-memory storage implementation for testing"""

    def __init__(self):
        self._files: Dict[str, List[str]] = {}
        self._lock = threading.RLock()

    def read_lines(self, name: str) -> List[str]:
        with self._lock:
            return list(self._files.get(_normalize(name), []))

    def write_lines(self, name: str, lines: List[str]) -> None:
        with self._lock:
            self._files[_normalize(name)] = list(lines)

    def append_line(self, name: str, line: str) -> None:
        with self._lock:
            self._files.setdefault(_normalize(name), []).append(line)

    def exists(self, name: str) -> bool:
        with self._lock:
            return _normalize(name) in self._files

    def delete(self, name: str) -> bool:
        with self._lock:
            return self._files.pop(_normalize(name), None) is not None

    def list_names(self, prefix: str = "") -> List[str]:
        with self._lock:
            if not prefix:
                return sorted(self._files)
            directory = _normalize(prefix) + "/"
            return sorted(n for n in self._files if n.startswith(directory))

    def clear(self) -> None:
        with self._lock:
            self._files = {}


class FileStorage(StorageInterface):
    """Plain-text file storage rooted at a data directory"""

    def __init__(self, root: Union[str, Path] = "data"):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, name: str) -> Path:
        return self.root / _normalize(name)

    def read_lines(self, name: str) -> List[str]:
        with self._lock:
            path = self._path(name)
            if not path.exists():
                return []
            with open(path, "r", encoding="utf-8") as f:
                return f.read().splitlines()

    def write_lines(self, name: str, lines: List[str]) -> None:
        with self._lock:
            path = self._path(name)
            path.parent.mkdir(parents=True, exist_ok=True)

            # Write a sibling temp file, then rename over the target
            fd, temp_path = tempfile.mkstemp(
                dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                    for line in lines:
                        f.write(line + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(temp_path, path)
            except BaseException:
                if os.path.exists(temp_path):
                    os.unlink(temp_path)
                raise

    def append_line(self, name: str, line: str) -> None:
        with self._lock:
            path = self._path(name)
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "a", encoding="utf-8", newline="\n") as f:
                f.write(line + "\n")

    def exists(self, name: str) -> bool:
        with self._lock:
            return self._path(name).is_file()

    def delete(self, name: str) -> bool:
        with self._lock:
            path = self._path(name)
            if path.is_file():
                path.unlink()
                return True
            return False

    def list_names(self, prefix: str = "") -> List[str]:
        with self._lock:
            base = self._path(prefix) if prefix else self.root
            if not base.is_dir():
                return []
            names = []
            for path in base.rglob("*"):
                if path.is_file() and not path.name.endswith(".tmp"):
                    names.append(path.relative_to(self.root).as_posix())
            return sorted(names)

    def clear(self) -> None:
        with self._lock:
            for name in self.list_names():
                self._path(name).unlink()
            # Remove directories left empty, deepest first
            for path in sorted(self.root.rglob("*"), key=lambda p: len(p.parts), reverse=True):
                if path.is_dir() and not any(path.iterdir()):
                    path.rmdir()
