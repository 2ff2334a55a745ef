"""Node and session identity for telemetry.

The node identifier is a random UUID persisted once per installation so that
restarts report the same value. When it cannot be persisted, every such
installation reports the same well-known fallback UUID instead of a fresh
random one, so failing storage never inflates unique-install counts.
"""
from __future__ import annotations

import enum
import logging
import os
import stat
import tempfile
import threading
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from beacon.errors import IdentityPersistError

logger = logging.getLogger("beacon.telemetry.identity")

IDENTITY_FILE_NAME = "telemetry.uuid"

# Used when the identifier file cannot be created, e.g. on a read-only filesystem.
FALLBACK_NODE_ID = uuid.UUID("2f998828-3f4a-4741-bf50-d11c6be42f50")


class IdentitySource(str, enum.Enum):
    PERSISTED = "persisted"
    CREATED = "created"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class NodeIdentity:
    """Durable pseudonymous identifier for one installation."""

    value: uuid.UUID
    source: IdentitySource

    @property
    def is_fallback(self) -> bool:
        return self.source is IdentitySource.FALLBACK

    def __str__(self) -> str:
        return str(self.value)


def new_session_identity() -> str:
    """Return a fresh identifier for this process run."""
    return str(uuid.uuid4())


def _parse_identifier(text: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(text.strip())
    except (AttributeError, ValueError):
        return None


class IdentityManager:
    """Resolves the node identity once and caches it for the process."""

    def __init__(self, cache_dir: Path):
        self._cache_dir = Path(cache_dir)
        self._path = self._cache_dir / IDENTITY_FILE_NAME
        self._identity: Optional[NodeIdentity] = None
        self._lock = threading.Lock()

    @property
    def identity_path(self) -> Path:
        return self._path

    def get_node_identity(self) -> NodeIdentity:
        """Get the node identity, creating and persisting it on first use."""
        if self._identity is not None:
            return self._identity
        with self._lock:
            if self._identity is None:
                self._identity = self._resolve()
        return self._identity

    def _resolve(self) -> NodeIdentity:
        try:
            present = self._path.exists()
        except OSError:
            present = False
        existing = self._read()
        if existing is not None:
            return NodeIdentity(existing, IdentitySource.PERSISTED)

        try:
            # A file that exists but did not parse is corrupt and gets replaced.
            self._write(uuid.uuid4(), overwrite=present)
        except FileExistsError:
            logger.debug("Identifier was created concurrently, adopting it")
        except OSError as e:
            logger.debug("Could not persist node identifier (%s), using fallback", e)
            return NodeIdentity(FALLBACK_NODE_ID, IdentitySource.FALLBACK)

        try:
            winner = self._read()
            if winner is None:
                raise IdentityPersistError("Identifier could not be read back", path=str(self._path))
        except IdentityPersistError as e:
            logger.debug("%s, using fallback", e)
            return NodeIdentity(FALLBACK_NODE_ID, IdentitySource.FALLBACK)

        return NodeIdentity(winner, IdentitySource.CREATED)

    def _read(self) -> Optional[uuid.UUID]:
        """Read a previously persisted identifier, None if absent or malformed."""
        try:
            text = self._path.read_text(encoding="ascii")
        except (OSError, UnicodeDecodeError):
            return None
        value = _parse_identifier(text)
        if value is None:
            logger.debug("Ignoring malformed identifier in %s", self._path)
        return value

    def _write(self, value: uuid.UUID, overwrite: bool = False) -> None:
        """Publish the identifier with owner-only permissions.

        The value goes to a private temp file first, so readers never see a
        partially written file. It is then hard-linked into place, which
        raises FileExistsError if another writer published first. Only
        ``overwrite`` renames over an existing file.
        """
        self._cache_dir.mkdir(mode=stat.S_IRWXU, parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".telemetry-", suffix=".tmp", dir=self._cache_dir)
        try:
            with os.fdopen(fd, "w", encoding="ascii") as f:
                f.write(f"{value}\n")
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, stat.S_IRUSR | stat.S_IWUSR)
            if overwrite:
                os.replace(tmp_name, self._path)
            else:
                os.link(tmp_name, self._path)
        finally:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
