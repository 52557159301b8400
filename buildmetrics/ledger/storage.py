"""Storage backends for the metrics ledger."""

import fcntl
import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Union


class LedgerStorage(ABC):
    """Interface for the append-only store behind a ledger.

    Implementations must serialize writers themselves: each build stage
    runs as its own process, so in-process locking is not enough.
    """

    @abstractmethod
    @contextmanager
    def open_for_append(self) -> Iterator[IO[str]]:
        """Open the store for appending, holding exclusive write access.

        Yields:
            A text handle positioned at the end of the store.
        """
        pass

    @abstractmethod
    def read_all(self) -> list[str]:
        """Read every persisted line.

        Returns:
            Lines in write order, without trailing newlines.
        """
        pass

    @abstractmethod
    def truncate(self) -> None:
        """Discard all persisted lines to start a fresh run."""
        pass

    def append_line(self, line: str) -> None:
        """Durably append a single line.

        Args:
            line: Record text without trailing newline.
        """
        with self.open_for_append() as handle:
            handle.write(line + "\n")
            handle.flush()


class FileLedgerStorage(LedgerStorage):
    """Ledger stored in a flat text file.

    Appends take an exclusive ``flock`` on the file and fsync before
    releasing it, so records written by earlier processes are never
    interleaved or left half-written by a later one.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def open_for_append(self) -> Iterator[IO[str]]:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield handle
                handle.flush()
                os.fsync(handle.fileno())
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def read_all(self) -> list[str]:
        if not self._path.exists():
            return []
        with open(self._path, "r", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_SH)
            try:
                return handle.read().splitlines()
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)

    def truncate(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._path, "a", encoding="utf-8") as handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                handle.truncate(0)
                handle.flush()
                os.fsync(handle.fileno())
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class _MemoryHandle:
    """Minimal writable handle collecting text for InMemoryLedgerStorage."""

    def __init__(self) -> None:
        self._chunks: list[str] = []

    def write(self, text: str) -> int:
        self._chunks.append(text)
        return len(text)

    def flush(self) -> None:
        pass

    def getvalue(self) -> str:
        return "".join(self._chunks)


class InMemoryLedgerStorage(LedgerStorage):
    """In-memory implementation for testing and dry runs.

    Text is only committed when the append block exits cleanly, which
    mirrors a crash before fsync losing the partial record.
    """

    def __init__(self, initial_text: str = "") -> None:
        self._text = initial_text

    @contextmanager
    def open_for_append(self) -> Iterator[IO[str]]:
        handle = _MemoryHandle()
        yield handle  # type: ignore[misc]
        self._text += handle.getvalue()

    def read_all(self) -> list[str]:
        return self._text.splitlines()

    def truncate(self) -> None:
        self._text = ""

    @property
    def text(self) -> str:
        """Everything persisted so far."""
        return self._text
