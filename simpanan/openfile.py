"""Open .simp files held in memory by the web UI, plus session recovery."""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import asdict, dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

RECOVERY_FILE_NAME = "simpanan_webui_recovery.json"
RECOVERY_VERSION = 1
SIMP_SUFFIX = ".simp"


class OpenFileStatus(str, Enum):
    """Whether a buffer matches what is on disk."""

    CLEAN = "clean"
    MODIFIED = "modified"


@dataclass
class OpenFile:
    """A .simp file opened in the web UI."""

    path: str
    disk_contents: str = ""
    buffer_contents: str = ""
    cursor_byte_offset: int = 0
    status: OpenFileStatus = OpenFileStatus.CLEAN

    def recompute(self) -> None:
        """Set the status from whether the buffer diverges from disk."""
        if self.disk_contents == self.buffer_contents:
            self.status = OpenFileStatus.CLEAN
        else:
            self.status = OpenFileStatus.MODIFIED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OpenFile:
        open_file = cls(
            path=str(data.get("path", "")),
            disk_contents=str(data.get("disk_contents", "")),
            buffer_contents=str(data.get("buffer_contents", "")),
            cursor_byte_offset=int(data.get("cursor_byte_offset", 0)),
        )
        try:
            open_file.status = OpenFileStatus(data.get("status"))
        except ValueError:
            open_file.recompute()
        return open_file


class BufferStoreError(Exception):
    """Base class for buffer store failures."""

    default_message = "buffer store error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NotSimpFileError(BufferStoreError):
    default_message = "path is not a .simp file"


class PathNotFoundError(BufferStoreError):
    default_message = "path does not exist on disk"


class AlreadyOpenError(BufferStoreError):
    default_message = "file is already open; switch active file instead"


class FileNotOpenError(BufferStoreError):
    default_message = "no open file at this path"


class EmptyPathError(BufferStoreError):
    default_message = "path must not be empty"


def recovery_path() -> Path:
    """Location of the recovery file, next to the connection registry."""
    return Path.home() / ".local" / "share" / "nvim" / RECOVERY_FILE_NAME


def _validate_path(path: str) -> None:
    if not path:
        raise EmptyPathError()
    if not path.endswith(SIMP_SUFFIX):
        raise NotSimpFileError()


def _read_text(path: str) -> str:
    return Path(path).read_bytes().decode("utf-8", errors="surrogateescape")


def _write_atomic(path: Path, data: str, prefix: str, suffix: str) -> None:
    fd, tmp_name = tempfile.mkstemp(prefix=prefix, suffix=suffix, dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp:
            tmp.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.remove(tmp_name)
        except FileNotFoundError:
            pass
        raise


class BufferStore:
    """Thread-safe registry of open files and the active one."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._files: dict[str, OpenFile] = {}
        self._active = ""

    def open(self, path: str) -> OpenFile:
        """Read a .simp file from disk and register it as clean."""
        _validate_path(path)
        with self._lock:
            if path in self._files:
                raise AlreadyOpenError()
            try:
                contents = _read_text(path)
            except FileNotFoundError as exc:
                raise PathNotFoundError() from exc
            open_file = OpenFile(
                path=path,
                disk_contents=contents,
                buffer_contents=contents,
                cursor_byte_offset=0,
                status=OpenFileStatus.CLEAN,
            )
            self._files[path] = open_file
            if not self._active:
                self._active = path
            return replace(open_file)

    def close(self, path: str) -> None:
        """Drop an open file, promoting another one to active if needed."""
        with self._lock:
            if path not in self._files:
                raise FileNotOpenError()
            del self._files[path]
            if self._active == path:
                self._active = next(iter(self._files), "")

    def save(self, path: str) -> None:
        """Write the buffer to disk so the file becomes clean."""
        with self._lock:
            open_file = self._files.get(path)
            if open_file is None:
                raise FileNotOpenError()
            Path(path).write_bytes(
                open_file.buffer_contents.encode("utf-8", errors="surrogateescape")
            )
            open_file.disk_contents = open_file.buffer_contents
            open_file.recompute()

    def edit(self, path: str, new_contents: str, new_cursor: int) -> OpenFile:
        """Replace the buffer and cursor, returning the updated state."""
        with self._lock:
            open_file = self._files.get(path)
            if open_file is None:
                raise FileNotOpenError()
            open_file.buffer_contents = new_contents
            open_file.cursor_byte_offset = new_cursor
            open_file.recompute()
            return replace(open_file)

    def get(self, path: str) -> OpenFile | None:
        """A copy of the open file at path, or None."""
        with self._lock:
            open_file = self._files.get(path)
            return None if open_file is None else replace(open_file)

    def list_files(self) -> list[OpenFile]:
        """Copies of every open file."""
        with self._lock:
            return [replace(f) for f in self._files.values()]

    @property
    def active(self) -> str:
        """Path of the active file, or an empty string."""
        with self._lock:
            return self._active

    def switch_active(self, path: str) -> None:
        """Make an already open file the active one."""
        with self._lock:
            if path not in self._files:
                raise FileNotOpenError()
            self._active = path

    def flush_recovery(self) -> None:
        """Write every open file to the recovery file."""
        path = recovery_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        with self._lock:
            payload = {
                "version": RECOVERY_VERSION,
                "active": self._active,
                "files": [f.to_dict() for f in self._files.values()],
            }
        _write_atomic(path, json.dumps(payload, indent=2), ".recovery-", ".tmp")

    def load_recovery(self) -> None:
        """Restore files from the recovery file, re-reading disk contents.

        A missing file or a file of another version is ignored; a corrupt
        file raises ValueError and leaves the store untouched.
        """
        path = recovery_path()
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return
        try:
            payload = json.loads(raw)
            if not isinstance(payload, dict):
                raise ValueError("top level is not an object")
            version = payload.get("version", 0)
            if version != RECOVERY_VERSION:
                return
            files = [OpenFile.from_dict(item) for item in payload.get("files") or []]
            active = str(payload.get("active") or "")
        except (ValueError, TypeError, AttributeError) as exc:
            raise ValueError(f"recovery file {path} is corrupt: {exc}") from exc

        with self._lock:
            for open_file in files:
                try:
                    open_file.disk_contents = _read_text(open_file.path)
                except FileNotFoundError:
                    open_file.disk_contents = ""
                except OSError:
                    pass
                open_file.recompute()
                self._files[open_file.path] = open_file
            if active and active in self._files:
                self._active = active