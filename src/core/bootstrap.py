"""Credential bootstrap.

Sources are tried in a fixed precedence; each step logs and reports a boolean
outcome so a failure always cascades to the next step and, finally, to
interactive pairing:

1) an existing credential file on disk
2) an inline ``Buddy~<base64(gzip(creds))>`` session id
3) a legacy ``Buddy~<file_id>#<key>`` remote archive
4) nothing: the engine has to pair interactively
"""

from __future__ import annotations

import base64
import binascii
import gzip
import json
import logging
import re
import zlib
from typing import Optional

from core.models import BootstrapResult, CredentialSource
from core.ports import ArchiveFetcherPort, CredentialStorePort

LOGGER = logging.getLogger(__name__)

SESSION_PREFIX = "Buddy~"
GZIP_MAGIC = b"\x1f\x8b"

_URLSAFE_TO_STANDARD = str.maketrans("-_", "+/")
_NON_BASE64 = re.compile(r"[^A-Za-z0-9+/]")


def decode_inline_session(encoded: str) -> Optional[str]:
    """Return the credential text carried by a base64(gzip) blob, or None."""

    # Both base64 alphabets are accepted; stray characters are skipped.
    compact = encoded.translate(_URLSAFE_TO_STANDARD)
    compact = _NON_BASE64.sub("", compact)
    compact += "=" * (-len(compact) % 4)
    try:
        compressed = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        LOGGER.warning("Inline session is not valid base64")
        return None
    if not compressed.startswith(GZIP_MAGIC):
        LOGGER.warning("Inline session is not gzip compressed (missing magic bytes)")
        return None
    try:
        return gzip.decompress(compressed).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError):
        LOGGER.warning("Inline session could not be decompressed")
        return None


def split_archive_reference(session_id: str) -> Optional[tuple[str, str]]:
    """Return (file_id, key) from a legacy ``Buddy~id#key`` session id."""

    if SESSION_PREFIX not in session_id:
        return None
    reference = session_id.split(SESSION_PREFIX, 1)[1]
    if "#" not in reference:
        return None
    file_id, key = reference.split("#", 1)
    if not file_id or not key:
        return None
    return file_id, key


class CredentialBootstrapper:
    """Makes sure a credential file exists before a connection attempt."""

    def __init__(
        self,
        store: CredentialStorePort,
        session_id: Optional[str],
        fetcher: Optional[ArchiveFetcherPort] = None,
    ) -> None:
        self._store = store
        self._session_id = (session_id or "").strip()
        self._fetcher = fetcher

    async def bootstrap(self) -> BootstrapResult:
        if self._load_existing():
            return BootstrapResult(CredentialSource.ON_DISK, True)
        if not self._session_id:
            LOGGER.warning("No credential file and no SESSION_ID configured")
            return BootstrapResult(CredentialSource.NONE, False)
        if self._load_inline():
            return BootstrapResult(CredentialSource.DECODED_INLINE, True)
        if await self._load_remote_archive():
            return BootstrapResult(CredentialSource.REMOTE_ARCHIVE, True)
        LOGGER.warning("No usable session found; interactive pairing is required")
        return BootstrapResult(CredentialSource.NONE, False)

    def _load_existing(self) -> bool:
        try:
            found = self._store.exists()
        except OSError:
            LOGGER.exception("Could not check credential file %s", self._store.path)
            return False
        if found:
            LOGGER.info("Existing credential file found at %s", self._store.path)
        return found

    def _load_inline(self) -> bool:
        if not self._session_id.startswith(SESSION_PREFIX):
            return False
        LOGGER.info("Loading inline compressed session")
        credentials = decode_inline_session(self._session_id[len(SESSION_PREFIX):])
        if credentials is None:
            return False
        try:
            keys = sorted(json.loads(credentials))
            LOGGER.info("Inline session parsed as JSON (%s keys)", len(keys))
        except (ValueError, TypeError):
            LOGGER.info("Inline session is not JSON, saving as raw text")
        try:
            self._store.write(credentials)
        except OSError:
            LOGGER.exception("Could not write credential file %s", self._store.path)
            return False
        LOGGER.info("Inline session saved to %s", self._store.path)
        return True

    async def _load_remote_archive(self) -> bool:
        reference = split_archive_reference(self._session_id)
        if reference is None:
            return False
        if self._fetcher is None:
            LOGGER.warning("SESSION_ID references a remote archive but no fetcher is available")
            return False
        file_id, key = reference
        LOGGER.info("Downloading legacy session archive %s", file_id)
        try:
            data = await self._fetcher.fetch(file_id, key)
            self._store.write(data)
        except Exception:
            LOGGER.exception("Failed to retrieve legacy session archive")
            return False
        LOGGER.info("Legacy session saved to %s", self._store.path)
        return True
