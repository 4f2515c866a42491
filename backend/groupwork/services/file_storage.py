"""Submission file storage: opaque save / open / delete contract.

Files live under ``<UPLOAD_DIR>/submissions/YYYY/MM/<random>.<ext>``. The
returned ``storage_ref`` is the path relative to the storage root; callers
treat it as an opaque token.
"""
import logging
import mimetypes
import os
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Any, BinaryIO, Iterable, Optional

from groupwork.config import settings
from groupwork.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


@dataclass
class IncomingFile:
    """An upload not yet accepted into storage."""

    original_name: str
    content_type: Optional[str]
    stream: BinaryIO


class LocalFileStorage:
    def __init__(self, root: str | os.PathLike, max_bytes: int = settings.MAX_UPLOAD_BYTES):
        self.root = Path(root)
        self.max_bytes = max_bytes

    def _subdir(self) -> Path:
        now = datetime.now(timezone.utc)
        return Path("submissions") / f"{now:%Y}" / f"{now:%m}"

    def resolve(self, storage_ref: str) -> Path:
        """Absolute path for a reference; refuses anything outside the root."""
        root = self.root.resolve()
        path = (root / storage_ref).resolve()
        if root not in path.parents:
            raise StorageError(f"Invalid storage reference: {storage_ref}")
        return path

    def exists(self, storage_ref: str) -> bool:
        try:
            return self.resolve(storage_ref).is_file()
        except StorageError:
            return False

    def save(self, upload: IncomingFile) -> dict[str, Any]:
        """Write the upload to disk and return its FileRef."""
        ext = os.path.splitext(upload.original_name or "")[1].lower()
        if not ext:
            ext = mimetypes.guess_extension(upload.content_type or "") or ""
        name = f"{secrets.token_hex(16)}{ext}"
        rel = self._subdir() / name
        dst = self.root / rel

        total = 0
        try:
            dst.parent.mkdir(parents=True, exist_ok=True)
            with dst.open("wb") as f:
                while True:
                    chunk = upload.stream.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    total += len(chunk)
                    if total > self.max_bytes:
                        raise ValidationError(
                            f"File '{upload.original_name}' exceeds {self.max_bytes} bytes"
                        )
                    f.write(chunk)
        except ValidationError:
            dst.unlink(missing_ok=True)
            raise
        except OSError as e:
            dst.unlink(missing_ok=True)
            raise StorageError(f"Failed to store '{upload.original_name}': {e}") from e

        logger.info("Stored upload '%s' as %s (%d bytes)", upload.original_name, rel.as_posix(), total)
        return {
            "filename": name,
            "original_name": upload.original_name,
            "storage_ref": rel.as_posix(),
            "mime_type": upload.content_type or mimetypes.guess_type(upload.original_name or "")[0],
            "size": total,
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        }

    def delete(self, storage_ref: str) -> None:
        try:
            self.resolve(storage_ref).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete {storage_ref}: {e}") from e
        logger.info("Released stored file %s", storage_ref)

    def save_all(self, uploads: Iterable[IncomingFile]) -> list[dict[str, Any]]:
        """Accept every upload or none: a failure releases the ones already written."""
        accepted: list[dict[str, Any]] = []
        try:
            for upload in uploads:
                accepted.append(self.save(upload))
        except Exception:
            self.release(accepted)
            raise
        return accepted

    def release(self, file_refs: Iterable[dict[str, Any]]) -> None:
        """Best-effort delete; failures are logged and never raised."""
        for ref in file_refs:
            try:
                self.delete(ref["storage_ref"])
            except StorageError:
                logger.exception("Could not release stored file %s", ref.get("storage_ref"))


@lru_cache
def get_storage() -> LocalFileStorage:
    """FastAPI dependency returning the configured storage backend."""
    return LocalFileStorage(settings.UPLOAD_DIR, settings.MAX_UPLOAD_BYTES)
