"""
reqapprove Main Entry Point

Loads configuration, wires the workflow components and serves the
approval endpoint with uvicorn.

Usage:
    python -m reqapprove.main --config config/workflow.yaml --port 8080
"""

import argparse
import asyncio
import sys
from dataclasses import dataclass
from typing import Optional

from reqapprove import __version__
from reqapprove.communication.identity import HeaderIdentityProvider, IdentityProvider
from reqapprove.communication.rest_server import ActionServer
from reqapprove.datastore.row_store import HeaderIndex, RowStoreAdapter
from reqapprove.datastore.sqlite_store import SQLitePropertyStore, SQLiteSheet
from reqapprove.logging.logger import configure_logging, get_logger
from reqapprove.notifications.mailer import Mailer, create_mailer
from reqapprove.notifications.service import NotificationService
from reqapprove.utils.config_loader import WorkflowConfig
from reqapprove.workflow.approval_engine import ApprovalStateMachine
from reqapprove.workflow.ingest import SubmissionIngest
from reqapprove.workflow.locking import DocumentLock
from reqapprove.workflow.token_store import ApprovalTokenStore


@dataclass
class Services:
    """The wired object graph"""
    config: WorkflowConfig
    sheet: SQLiteSheet
    rows: RowStoreAdapter
    tokens: ApprovalTokenStore
    notifications: NotificationService
    machine: ApprovalStateMachine
    ingest: SubmissionIngest


def build_services(config: WorkflowConfig, mailer: Optional[Mailer] = None) -> Services:
    """
    Build every component from one config.

    The header row is snapshotted into a HeaderIndex here, once; a missing
    decision column aborts start-up with HeaderNotFound.
    """
    sheet = SQLiteSheet(config.db_path, headers=config.headers)
    header_index = HeaderIndex.from_backend(sheet)

    rows = RowStoreAdapter(sheet, header_index)
    rows.validate_schema()

    tokens = ApprovalTokenStore(SQLitePropertyStore(config.db_path))
    notifications = NotificationService(mailer or create_mailer(config.smtp))
    machine = ApprovalStateMachine(
        config=config,
        rows=rows,
        tokens=tokens,
        notifications=notifications,
        lock=DocumentLock(config.lock_timeout_seconds)
    )
    ingest = SubmissionIngest(rows, machine)

    return Services(
        config=config,
        sheet=sheet,
        rows=rows,
        tokens=tokens,
        notifications=notifications,
        machine=machine,
        ingest=ingest
    )


def build_server(
    config: WorkflowConfig,
    mailer: Optional[Mailer] = None,
    identity: Optional[IdentityProvider] = None,
    host: str = "127.0.0.1",
    port: int = 8080
) -> ActionServer:
    services = build_services(config, mailer)
    return ActionServer(
        config=config,
        machine=services.machine,
        ingest=services.ingest,
        identity=identity or HeaderIdentityProvider(config.identity_header),
        host=host,
        port=port,
        enable_metrics=config.metrics_enabled,
        metrics_port=config.metrics_port
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Requisition approval server")
    parser.add_argument("--config", default="config/workflow.yaml", help="Workflow YAML config")
    parser.add_argument("--log-config", default="config/logging.yaml", help="Logging YAML config")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    parser.add_argument("--port", type=int, default=8080, help="Bind port")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    configure_logging(args.log_config)
    logger = get_logger(__name__, component="main")

    logger.info(f"reqapprove v{__version__} starting...")

    try:
        config = WorkflowConfig.from_file(args.config)
        server = build_server(config, host=args.host, port=args.port)
    except Exception as exc:
        logger.error(f"Start-up failed: {exc}", exc_info=True)
        return 1

    logger.info(
        f"Serving {server.action_path} for {len(config.stakeholders)} stakeholders "
        f"(lock timeout {config.lock_timeout_seconds}s)"
    )

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        logger.info("Shutting down...")
    return 0


if __name__ == "__main__":
    sys.exit(main())
