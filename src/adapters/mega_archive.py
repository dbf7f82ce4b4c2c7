"""Mega.nz archive fetcher for legacy session ids.

Implements the core ArchiveFetcherPort. The mega.py client is blocking, so
downloads run in a worker thread. The library ships in the optional
``legacy`` extra; without it the legacy bootstrap step simply fails.
"""

from __future__ import annotations

import asyncio
import logging
import os
import tempfile

LOGGER = logging.getLogger(__name__)

MEGA_FILE_URL = "https://mega.nz/file/{file_id}#{key}"


def archive_url(file_id: str, key: str) -> str:
    return MEGA_FILE_URL.format(file_id=file_id, key=key)


class MegaArchiveFetcher:
    """Downloads a shared file anonymously and returns its bytes."""

    async def fetch(self, file_id: str, key: str) -> bytes:
        return await asyncio.to_thread(self._download, archive_url(file_id, key))

    def _download(self, url: str) -> bytes:
        try:
            from mega import Mega
        except ImportError as exc:
            raise RuntimeError("mega.py is not installed; install the 'legacy' extra") from exc

        client = Mega().login()
        with tempfile.TemporaryDirectory(prefix="warden-session-") as directory:
            downloaded = client.download_url(url, dest_path=directory, dest_filename="creds.json")
            path = str(downloaded) if downloaded else os.path.join(directory, "creds.json")
            with open(path, "rb") as handle:
                data = handle.read()
        LOGGER.info("Downloaded legacy session archive (%s bytes)", len(data))
        return data
