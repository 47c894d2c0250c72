"""Durable key-value slots holding the serialized event collection."""
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from store.exceptions import PersistenceReadError, PersistenceWriteError

logger = logging.getLogger(__name__)

DEFAULT_KEY = 'events'


class DurableSlot:
    """
    A single named value in durable storage.

    Implementations read and write the whole value; there are no partial
    updates.
    """

    def __init__(self, key: str = DEFAULT_KEY):
        self.key = key

    def read(self) -> Optional[str]:
        """
        Return the stored value, or None if the slot is empty.

        Raises:
            PersistenceReadError: If the backend cannot be read
        """
        raise NotImplementedError

    def write(self, value: str) -> None:
        """
        Overwrite the stored value.

        Raises:
            PersistenceWriteError: If the backend cannot be written
        """
        raise NotImplementedError


class MemorySlot(DurableSlot):
    """Slot kept in a process-local dictionary."""

    def __init__(self, key: str = DEFAULT_KEY, backing: Optional[Dict[str, str]] = None):
        super().__init__(key)
        self.backing = backing if backing is not None else {}

    def read(self) -> Optional[str]:
        return self.backing.get(self.key)

    def write(self, value: str) -> None:
        self.backing[self.key] = value


class FileSlot(DurableSlot):
    """Slot stored as a JSON file on local disk."""

    def __init__(self, path: Union[str, Path], key: str = DEFAULT_KEY):
        """
        Initialize the file slot.

        Args:
            path: File holding the slot value
            key: Slot name, used in log and error messages
        """
        super().__init__(key)
        self.path = Path(path)

    def read(self) -> Optional[str]:
        if not self.path.exists():
            return None
        try:
            return self.path.read_text(encoding='utf-8')
        except (OSError, UnicodeDecodeError) as e:
            raise PersistenceReadError(
                f"Failed to read {self.path}: {e}", key=self.key
            ) from e

    def write(self, value: str) -> None:
        """Write to a temporary file and atomically replace the slot file."""
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}-", dir=str(self.path.parent)
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(value)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except OSError as e:
            raise PersistenceWriteError(
                f"Failed to write {self.path}: {e}", key=self.key
            ) from e
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.remove(tmp_name)
        logger.debug(f"Wrote {len(value)} bytes to {self.path}")
