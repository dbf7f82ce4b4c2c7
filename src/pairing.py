"""Interactive pairing helpers.

When no stored session exists the engine asks for a device link: it emits a
pairing code that we render as a terminal QR code for the phone to scan.
"""

from __future__ import annotations

import qrcode

import settings
from adapters.file_credential_store import FileCredentialStore
from adapters.mega_archive import MegaArchiveFetcher
from core.bootstrap import CredentialBootstrapper
from core.models import BootstrapResult


def print_pairing_qr(code: str) -> None:
    qr = qrcode.QRCode(border=1)
    qr.add_data(code)
    qr.make(fit=True)
    print("")
    print("Scan this QR code from Linked Devices on your phone:")
    qr.print_ascii(invert=True)


def build_bootstrapper() -> CredentialBootstrapper:
    store = FileCredentialStore(settings.CREDENTIALS_PATH)
    return CredentialBootstrapper(store, settings.SESSION_ID, MegaArchiveFetcher())


async def prepare_session() -> BootstrapResult:
    """Run the bootstrap chain once without connecting."""

    return await build_bootstrapper().bootstrap()

