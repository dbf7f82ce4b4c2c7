"""Application entry point for the warden agent."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from dotenv import load_dotenv

import settings
from adapters.file_credential_store import FileCredentialStore
from adapters.mega_archive import MegaArchiveFetcher
from adapters.status_page import create_app, start_server
from core.announce import ConnectAnnouncer
from core.bootstrap import CredentialBootstrapper
from core.dispatch import BackgroundTasks
from core.lifecycle import ConnectionLifecycleManager
from core.membership import MembershipReconciler
from core.recovery import DeleteRecoveryEngine
from core.retention import RetentionCache
from core.status import AutoReact, StatusEngagement
from engine import build_engine, load_plugins
from pairing import print_pairing_qr, prepare_session

NAME = "WARDEN"
FONT = "tarty-1"


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    def __init__(self, secrets: list[str], fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._secrets = [secret for secret in secrets if secret]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        for secret in self._secrets:
            message = message.replace(secret, "***")
        return message


def _collect_redaction_values(config: dict) -> list[str]:
    redact_cfg = config.get("redact", {}) if config else {}
    if not redact_cfg.get("enabled", True):
        return []
    values = []
    for name in redact_cfg.get("patterns", ["SESSION_ID"]):
        value = os.getenv(name)
        if value:
            values.append(value)
    return sorted(set(values), key=len, reverse=True)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", True):
        return

    load_dotenv()
    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    secrets = _collect_redaction_values(config)
    formatter = _RedactingFormatter(secrets, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/warden.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.CONFIG_DIR, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def build_manager() -> ConnectionLifecycleManager:
    """Wire the core components from settings."""

    agent = settings.AGENT
    features = agent.features

    store = FileCredentialStore(settings.CREDENTIALS_PATH)
    bootstrapper = CredentialBootstrapper(store, agent.session_id, MegaArchiveFetcher())

    reconciler = MembershipReconciler(
        settings.MEMBERSHIP_TARGETS,
        report_recipient=agent.report_recipient,
        inter_attempt_delay=agent.inter_attempt_delay_seconds,
    )
    recovery = DeleteRecoveryEngine(
        RetentionCache(),
        enabled=features.anti_delete,
        report_recipient=agent.report_recipient,
    )
    tasks = BackgroundTasks()
    status = StatusEngagement(features, reply_text=agent.status_read_message, tasks=tasks)
    auto_react = AutoReact(features.auto_react)

    # Core handlers run first; the external router sees the raw event after them.
    return ConnectionLifecycleManager(
        build_engine(settings.ENGINE),
        bootstrapper,
        store,
        reconciler,
        config=agent.lifecycle,
        announcer=ConnectAnnouncer(agent, settings.MEMBERSHIP_TARGETS),
        message_handlers=[recovery.handle_batch, status.handle_batch, auto_react.handle_batch],
        plugins=load_plugins(settings.PLUGINS),
        on_pairing_code=print_pairing_qr,
        background_tasks=tasks,
    )


async def _serve(manager: ConnectionLifecycleManager) -> None:
    logger = logging.getLogger(__name__)
    runner = None
    if settings.SERVER_ENABLED:
        app = create_app(manager, settings.FEATURES, len(settings.MEMBERSHIP_TARGETS))
        runner = await start_server(app, settings.SERVER_HOST, settings.SERVER_PORT)
    try:
        await manager.run()
        if runner is None:
            return
        # After a logout only the status page keeps running.
        logger.info("Connection loop halted; status page stays up")
        await asyncio.Event().wait()
    finally:
        if runner is not None:
            await runner.cleanup()


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)

    logger.info("Starting warden")
    logger.info(
        "%s membership targets loaded, mode=%s, anti_delete=%s",
        len(settings.MEMBERSHIP_TARGETS),
        settings.MODE,
        settings.FEATURES.anti_delete,
    )

    manager = build_manager()
    try:
        asyncio.run(_serve(manager))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


def _session() -> None:
    _print_banner()
    _configure_logging()
    result = asyncio.run(prepare_session())
    if result.ready:
        print(f"Session ready from {result.source.value}: {settings.CREDENTIALS_PATH}")
    else:
        print("No usable session. Run the agent and scan the QR code to pair.")


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="warden")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the agent")
    subparsers.add_parser(
        "session",
        help="Prepare the credential file from SESSION_ID without connecting.",
    )

    args = parser.parse_args(argv)
    if args.command == "session":
        _session()
        return
    _run()


if __name__ == "__main__":
    main()
