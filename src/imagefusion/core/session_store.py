"""Session folder storage for merge results.

Each merge is stored in its own directory under ``uploads_dir``::

    uploads/
        20261018-140322_toy_3f2a9c1b/
            image1.jpg
            image2.png
            result.png
            metadata.json

The directory name starts with a UTC timestamp and ends with the first eight
characters of the session id, so concurrent requests never share a folder.
Inline source images (data URIs, bare base64) are stored as submitted once
Pillow has confirmed they are images.  Sources sent as URLs are never fetched
by the server; the URL is recorded under ``sources`` in ``metadata.json``
instead.  The result comes from the image provider and is always re-encoded
as PNG.

A session is written once and never modified.  If any file cannot be
written, the partially written directory is removed before the error
propagates, so a failed merge leaves nothing behind on disk.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

import httpx

from imagefusion.core.errors import PersistenceError
from imagefusion.core.generators import ImageResult
from imagefusion.core.images import decode_inline_image, is_remote_url, to_png, verify_image

logger = logging.getLogger(__name__)

METADATA_FILENAME = "metadata.json"
RESULT_FILENAME = "result.png"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]+")


@dataclass
class SavedSession:
    """A persisted merge session.

    Attributes:
        session_id: Opaque unique token (uuid4 hex).
        directory_name: Name of the session directory under ``uploads_dir``.
        directory: Absolute path of the session directory.
        image1_path, image2_path: Stored source files, or ``None`` for
            sources submitted as URLs.
        result_path: Stored result image.
        metadata: The metadata document written to ``metadata.json``.
    """

    session_id: str
    directory_name: str
    directory: Path
    image1_path: Path | None
    image2_path: Path | None
    result_path: Path
    metadata: dict = field(default_factory=dict)


class SessionStore:
    """Writes, reads and deletes session directories.

    Attributes:
        uploads_dir: Root directory holding all sessions.
        timeout: Timeout in seconds for downloading provider-hosted results.
    """

    def __init__(
        self,
        uploads_dir: Path,
        *,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            uploads_dir: Root directory; created if missing.
            timeout: Download timeout for provider-hosted result images.
            transport: Optional httpx transport (tests use
                ``httpx.MockTransport``).
        """
        self.uploads_dir = Path(uploads_dir)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.timeout = timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def session_path(self, directory_name: str) -> Path | None:
        """Resolve a session directory name safely.

        Args:
            directory_name: Name as stored in the activity log.

        Returns:
            The resolved directory path, or ``None`` if the name is empty or
            would escape ``uploads_dir``.
        """
        if not directory_name or directory_name in (".", ".."):
            return None

        root = self.uploads_dir.resolve()
        candidate = (root / directory_name).resolve()
        if candidate.parent != root:
            logger.warning(f"Rejected session path outside uploads dir: {directory_name}")
            return None
        return candidate

    @staticmethod
    def public_url(directory_name: str, filename: str = RESULT_FILENAME) -> str:
        """URL path under which a stored file is served."""
        return f"/uploads/{directory_name}/{filename}"

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    async def save(
        self,
        *,
        client_address: str,
        style_key: str,
        image1: str,
        image2: str,
        result: ImageResult,
        metadata: dict,
    ) -> SavedSession:
        """Persist one merge session.

        Args:
            client_address: Caller address, recorded in the metadata.
            style_key: Resolved style key, used in the directory name.
            image1: First source image payload as submitted.  URLs are
                recorded, not fetched.
            image2: Second source image payload as submitted.
            result: Generated image reference.
            metadata: Pipeline metadata (style, model, descriptions, prompt...).

        Returns:
            The :class:`SavedSession`.

        Raises:
            PersistenceError: If any artifact cannot be fetched, decoded or
                written.  No directory is left behind in that case.
        """
        session_id = uuid.uuid4().hex
        created_at = datetime.now(timezone.utc)
        slug = _UNSAFE_CHARS.sub("", style_key) or "style"
        directory_name = f"{created_at:%Y%m%d-%H%M%S}_{slug}_{session_id[:8]}"
        directory = self.uploads_dir / directory_name

        try:
            directory.mkdir(parents=True, exist_ok=False)
        except OSError as e:
            raise PersistenceError(f"Could not create session directory: {e}") from e

        sources: dict[str, str] = {}
        try:
            image1_path = self._write_source(directory, "image1", image1, sources)
            image2_path = self._write_source(directory, "image2", image2, sources)

            if result.data:
                raw_result = result.data
            else:
                raw_result = await self._download(result.url)

            result_path = directory / RESULT_FILENAME
            result_path.write_bytes(to_png(raw_result))

            files = {"result": result_path.name}
            for stem, path in (("image1", image1_path), ("image2", image2_path)):
                if path is not None:
                    files[stem] = path.name

            document = {
                "session_id": session_id,
                "session_dir": directory_name,
                "created_at": created_at.isoformat(),
                "client_address": client_address,
                **metadata,
                "files": files,
            }
            if sources:
                document["sources"] = sources
            with open(directory / METADATA_FILENAME, "w", encoding="utf-8") as handle:
                json.dump(document, handle, indent=2, ensure_ascii=False)
        except (OSError, ValueError, httpx.HTTPError) as e:
            shutil.rmtree(directory, ignore_errors=True)
            logger.error(f"Failed to persist session {directory_name}: {e}")
            raise PersistenceError(f"Could not save session: {e}") from e

        logger.info(f"Saved session {directory_name}")
        return SavedSession(
            session_id=session_id,
            directory_name=directory_name,
            directory=directory,
            image1_path=image1_path,
            image2_path=image2_path,
            result_path=result_path,
            metadata=document,
        )

    @staticmethod
    def _write_source(
        directory: Path, stem: str, payload: str, sources: dict[str, str]
    ) -> Path | None:
        payload = payload.strip()
        if is_remote_url(payload):
            # Client URLs are only recorded; the server never fetches them.
            sources[stem] = payload
            return None

        data, extension = decode_inline_image(payload)
        verify_image(data)

        path = directory / f"{stem}.{extension}"
        path.write_bytes(data)
        return path

    async def _download(self, url: str | None) -> bytes:
        """Fetch a provider-hosted result image."""
        if not url:
            raise ValueError("Nothing to download")
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
        ) as http:
            response = await http.get(url)
        response.raise_for_status()
        return response.content

    # ------------------------------------------------------------------
    # Read / delete
    # ------------------------------------------------------------------

    def load_metadata(self, directory_name: str) -> dict | None:
        """Read a session's metadata document.

        Args:
            directory_name: Session directory name.

        Returns:
            The metadata dictionary, or ``None`` if the session no longer
            exists or its metadata is unreadable.
        """
        directory = self.session_path(directory_name)
        if directory is None:
            return None

        metadata_path = directory / METADATA_FILENAME
        if not metadata_path.exists():
            return None

        try:
            with open(metadata_path, encoding="utf-8") as handle:
                metadata = json.load(handle)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable metadata in {directory_name}: {e}")
            return None

        return metadata if isinstance(metadata, dict) else None

    def delete(self, directory_name: str) -> bool:
        """Delete a session directory and everything in it.

        Args:
            directory_name: Session directory name.

        Returns:
            ``True`` if a directory was removed, ``False`` if none existed.

        Raises:
            PersistenceError: If the directory exists but cannot be removed.
        """
        directory = self.session_path(directory_name)
        if directory is None or not directory.is_dir():
            return False

        try:
            shutil.rmtree(directory)
        except OSError as e:
            raise PersistenceError(f"Could not delete session {directory_name}: {e}") from e

        logger.info(f"Deleted session {directory_name}")
        return True
