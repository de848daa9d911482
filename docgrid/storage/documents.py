"""Signed URLs for uploaded documents.

LocalDocumentStorage serves files from a directory behind some HTTP
front end at `base_url` and signs links the way object stores do: an expiry
timestamp plus an HMAC-SHA256 over "path:expiry".
"""

import asyncio
import hashlib
import hmac
import time
from collections.abc import Callable
from pathlib import Path
from urllib.parse import quote, urlencode

from docgrid.core.config import LifecycleConfig
from docgrid.core.errors import SignedUrlError
from docgrid.storage.base import DocumentStorage


class LocalDocumentStorage(DocumentStorage):
    """Document storage over a local directory.

    Args:
        root: Directory holding uploaded PDFs; row file paths are relative to it.
        base_url: Public URL the directory is served under.
        secret: Signing key shared with whatever serves the files.
        clock: Returns the current unix time.
    """

    def __init__(
        self,
        root: str | Path,
        base_url: str,
        secret: str,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise SignedUrlError("Signing secret is empty")
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")
        self._secret = secret.encode("utf-8")
        self.clock = clock

    def _signature(self, path: str, expires: int) -> str:
        message = f"{path}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    def _resolve(self, path: str) -> Path:
        candidate = (self.root / path).resolve()
        if self.root.resolve() not in candidate.parents:
            raise SignedUrlError(f"Path escapes storage root: {path}")
        return candidate

    async def create_signed_url(
        self,
        path: str,
        expires_in: int = LifecycleConfig.SIGNED_URL_TTL_SECONDS,
    ) -> str:
        exists = await asyncio.to_thread(lambda: self._resolve(path).is_file())
        if not exists:
            raise SignedUrlError(f"Object not found: {path}")

        expires = int(self.clock()) + expires_in
        query = urlencode({"expires": expires, "signature": self._signature(path, expires)})
        return f"{self.base_url}/{quote(path)}?{query}"

    def verify(self, path: str, expires: int, signature: str) -> bool:
        """Check a signature produced by create_signed_url() and its expiry."""
        if expires < self.clock():
            return False
        return hmac.compare_digest(self._signature(path, expires), signature)
