"""
Artifact Exporter
=================
Hands a finished in-memory payload to a save target under a filename.

Handle Lifecycle
----------------
``export()`` wraps the payload in a transient, reference-counted
``ArtifactHandle`` (the server-side counterpart of a browser object URL),
passes that handle to the save callback, and releases it on exit from
the ``_acquired()`` context manager, whether or not the callback raised.
A released handle refuses further reads, so nothing can hold on to the
payload after the save has been triggered.

The default save callback copies the bytes into a ``SavedArtifact``,
which the HTTP layer turns into an attachment response.
"""

from __future__ import annotations

import logging
import re
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator
from urllib.parse import quote

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[^\x20-\x7e]|["\\]')


@dataclass(frozen=True, slots=True)
class SavedArtifact:
    """A downloadable file as handed to the client."""

    filename: str
    media_type: str
    content: bytes

    @property
    def content_disposition(self) -> str:
        """
        RFC 6266 attachment header.

        Header values must be Latin-1, so a filename outside printable
        ASCII gets an ASCII fallback plus a UTF-8 ``filename*`` parameter.
        """
        fallback = _UNSAFE_FILENAME_CHARS.sub("_", self.filename)
        if fallback == self.filename:
            return f'attachment; filename="{self.filename}"'
        encoded = quote(self.filename, safe="")
        return f'attachment; filename="{fallback}"; ' f"filename*=UTF-8''{encoded}"


class ArtifactHandle:
    """Reference-counted handle to an in-memory payload."""

    def __init__(self, content: bytes, media_type: str) -> None:
        self.token = uuid.uuid4().hex
        self.media_type = media_type
        self._content: bytes | None = content
        self._refs = 0
        self._lock = threading.Lock()

    @property
    def refcount(self) -> int:
        with self._lock:
            return self._refs

    @property
    def released(self) -> bool:
        with self._lock:
            return self._content is None

    def retain(self) -> ArtifactHandle:
        with self._lock:
            if self._content is None:
                raise RuntimeError(f"Artifact handle {self.token} already released")
            self._refs += 1
        return self

    def release(self) -> None:
        with self._lock:
            if self._refs > 0:
                self._refs -= 1
            if self._refs == 0:
                self._content = None

    def read(self) -> bytes:
        with self._lock:
            if self._content is None:
                raise RuntimeError(f"Artifact handle {self.token} already released")
            return self._content


SaveCallback = Callable[[ArtifactHandle, str], SavedArtifact]


def save_to_response(handle: ArtifactHandle, filename: str) -> SavedArtifact:
    """Default save target: copy the payload out for an HTTP response."""
    return SavedArtifact(filename=filename, media_type=handle.media_type, content=handle.read())


class ArtifactExporter:
    """Turns an in-memory payload into a named downloadable artifact."""

    def __init__(self, save: SaveCallback = save_to_response) -> None:
        self._save = save

    @contextmanager
    def _acquired(self, content: bytes, media_type: str) -> Iterator[ArtifactHandle]:
        handle = ArtifactHandle(content, media_type).retain()
        try:
            yield handle
        finally:
            handle.release()

    def export(self, payload: str | bytes, mime_type: str, filename: str) -> SavedArtifact:
        content = payload.encode("utf-8") if isinstance(payload, str) else bytes(payload)
        with self._acquired(content, mime_type) as handle:
            artifact = self._save(handle, filename)
        logger.debug(
            "Exported artifact %s (%d bytes, %s)", filename, len(content), mime_type,
        )
        return artifact
