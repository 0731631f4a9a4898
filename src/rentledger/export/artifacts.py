"""Artifact storage for rendered reports."""

import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import structlog

from rentledger.config import get_settings
from rentledger.errors import ExternalServiceError

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StoredArtifact:
    reference: str
    path: Path
    size: int


class ArtifactStore(Protocol):
    """Somewhere rendered reports are published."""

    def publish(self, file_name: str, data: bytes) -> StoredArtifact: ...


class LocalArtifactStore:
    """Publishes artifacts into a local directory.

    Bytes go to a temp file in the target directory first and are then
    renamed into place, so readers only ever see complete files.
    """

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir or get_settings().export_dir)
        self._logger = logger.bind(component="artifact_store")

    def publish(self, file_name: str, data: bytes) -> StoredArtifact:
        target = self.base_dir / file_name
        tmp_name: str | None = None
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".", suffix=".part")
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, target)
        except OSError as e:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            self._logger.error("artifact_publish_failed", file_name=file_name, error=str(e))
            raise ExternalServiceError("artifact_store", f"Failed to write {file_name}") from e

        self._logger.info("artifact_published", path=str(target), size=len(data))
        return StoredArtifact(reference=target.resolve().as_uri(), path=target, size=len(data))
