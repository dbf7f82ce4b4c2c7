"""File-backed credential store.

Implements the core CredentialStorePort with a single credential file.
Writes go to a temp file in the same directory and are swapped in with
os.replace so readers never see a partial file.
"""

from __future__ import annotations

import os
import tempfile


class FileCredentialStore:
    """Thin file wrapper that satisfies the CredentialStorePort contract."""

    def __init__(self, path: str) -> None:
        self._path = os.path.abspath(path)

    @property
    def path(self) -> str:
        return self._path

    def exists(self) -> bool:
        return os.path.isfile(self._path) and os.path.getsize(self._path) > 0

    def read(self) -> bytes:
        with open(self._path, "rb") as handle:
            return handle.read()

    def write(self, data: "bytes | str") -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        directory = os.path.dirname(self._path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=".creds-", suffix=".tmp", dir=directory)
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, self._path)
        except BaseException:
            # Leave the previous credential file untouched.
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
