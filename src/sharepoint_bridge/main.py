"""Process entry point: loads configuration and runs the selected transports."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from functools import partial

import uvicorn
from fastapi import FastAPI

from sharepoint_bridge import __version__
from sharepoint_bridge.config import (
    CLIENT_MODE,
    AppConfig,
    RemoteApiConfig,
    load_auth_tokens,
    load_config,
    load_remote_api_config,
    requested_server_mode,
)
from sharepoint_bridge.errors import BridgeError, ConfigurationError
from sharepoint_bridge.gate.authorization import AuthorizationGate, authorization_gate_from_config
from sharepoint_bridge.graph.certificate import load_certificate
from sharepoint_bridge.graph.client import graph_client_from_config
from sharepoint_bridge.graph.drive import DriveClient, resolve_drive
from sharepoint_bridge.graph.token import token_provider_from_config
from sharepoint_bridge.remote.operations import remote_operations_from_config
from sharepoint_bridge.resources.operations import (
    ResourceOperations,
    resource_operations_from_config,
)
from sharepoint_bridge.transports.http_api import create_app
from sharepoint_bridge.transports.mcp_tools import Operations, mcp, set_operations
logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_LEVELS = {
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def configure_logging(level: str = "info", log_file: str | None = None) -> None:
    """Send logs to stderr (stdout carries the MCP protocol) and optionally a file."""
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    logging.basicConfig(
        level=_LEVELS.get(level, logging.INFO), format=LOG_FORMAT, handlers=handlers, force=True
    )


def install_token_reload(gate: AuthorizationGate) -> None:
    """Reload the caller token set from the environment on SIGHUP."""
    if not hasattr(signal, "SIGHUP"):
        return

    def _reload(signum: int, frame: object) -> None:
        gate.reload(load_auth_tokens())

    signal.signal(signal.SIGHUP, _reload)


def _initialize_operations(config: AppConfig) -> ResourceOperations:
    try:
        return resource_operations_from_config(config)
    except BridgeError as exc:
        logger.error("[_initialize_operations] SharePoint client initialization failed; error:%s", exc)
        sys.exit(1)


def build_api(config: AppConfig, operations: ResourceOperations | None = None) -> FastAPI:
    """Build the FastAPI app; without ``operations`` the store initializes at startup."""
    gate = authorization_gate_from_config(config)
    install_token_reload(gate)
    logger.info("[build_api] caller tokens loaded; token_count:%d", gate.token_count)
    return create_app(
        gate,
        operations=operations,
        initializer=None if operations is not None else partial(resource_operations_from_config, config),
        cors_origins=config.cors_origins,
    )


def run_mcp(operations: Operations) -> None:
    set_operations(operations)
    logger.info("[run_mcp] serving MCP tools over stdio")
    mcp.run(transport="stdio")


def run_api(config: AppConfig) -> None:
    app = build_api(config)
    logger.info("[run_api] serving HTTP and WebSocket; host:%s;port:%d", config.host, config.port)
    uvicorn.run(app, host=config.host, port=config.port, log_config=None)


def run_dual(config: AppConfig) -> None:
    operations = _initialize_operations(config)
    app = build_api(config, operations)
    server = uvicorn.Server(
        uvicorn.Config(app, host=config.host, port=config.port, log_config=None)
    )
    thread = threading.Thread(target=server.run, name="api-server", daemon=True)
    thread.start()
    logger.info("[run_dual] API server started; host:%s;port:%d", config.host, config.port)
    try:
        run_mcp(operations)
    finally:
        server.should_exit = True


def run_api_client(config: RemoteApiConfig) -> None:
    try:
        operations = remote_operations_from_config(config)
    except BridgeError as exc:
        logger.error("[run_api_client] bridge API check failed; base_url:%s;error:%s", config.base_url, exc)
        sys.exit(1)
    run_mcp(operations)


def run_check(config: AppConfig) -> int:
    """Pre-flight check of certificate, service token, site drive and library listing.

    Returns:
        Process exit status: 0 when every step passes, 1 on the first failure.
    """
    try:
        material = load_certificate(config.cert_path, config.cert_password)
        logger.info("[run_check] certificate ok; thumbprint:%s", material.thumbprint)

        tokens = token_provider_from_config(config)
        tokens.get_valid_token()
        logger.info("[run_check] service token ok; client_id:%s", config.client_id)

        graph = graph_client_from_config(tokens, config)
        drive = resolve_drive(graph, config.site_url, config.drive_name)
        logger.info("[run_check] site drive ok; drive:%s;drive_id:%s", drive.name, drive.drive_id)

        operations = ResourceOperations(DriveClient(graph, drive), base_library=config.doc_library)
        listing = operations.list_folders("")
        logger.info("[run_check] library listing ok; folders:%d", listing["count"])
    except BridgeError as exc:
        logger.error("[run_check] check failed; error:%s", exc)
        return 1
    logger.info("[run_check] all checks passed")
    return 0


def run_api_client_check(config: RemoteApiConfig) -> int:
    try:
        remote_operations_from_config(config)
    except BridgeError as exc:
        logger.error("[run_api_client_check] check failed; error:%s", exc)
        return 1
    logger.info("[run_api_client_check] bridge API accepted the caller token; base_url:%s", config.base_url)
    return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="sharepoint-bridge",
        description="SharePoint document library access over MCP, HTTP and WebSocket",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate configuration, certificate, service token and site access, then exit",
    )
    return parser.parse_args(argv)


def _main_api_client(check: bool) -> None:
    try:
        config = load_remote_api_config()
    except ConfigurationError as exc:
        logger.error("[main] configuration error; error:%s", exc.message)
        sys.exit(1)

    configure_logging(config.log_level, config.log_file)
    logger.info("[main] starting sharepoint-bridge api-client; version:%s;config:%s", __version__, config.sanitized())
    if check:
        sys.exit(run_api_client_check(config))
    run_api_client(config)


def main(argv: list[str] | None = None) -> None:
    """Console script entry point."""
    args = parse_args(argv)
    configure_logging()
    if requested_server_mode() == CLIENT_MODE:
        _main_api_client(args.check)
        return

    try:
        config = load_config()
    except ConfigurationError as exc:
        logger.error("[main] configuration error; error:%s", exc.message)
        sys.exit(1)

    configure_logging(config.log_level, config.log_file)
    logger.info("[main] starting sharepoint-bridge; version:%s;config:%s", __version__, config.sanitized())

    if args.check:
        sys.exit(run_check(config))
    if config.server_mode == "api":
        run_api(config)
    elif config.server_mode == "dual":
        run_dual(config)
    else:
        run_mcp(_initialize_operations(config))


if __name__ == "__main__":
    main()
