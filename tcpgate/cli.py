"""Command-line entry point that runs the gateway server."""

import argparse
import signal
from typing import Optional, Sequence

from .config import ConfigError, get_config, init_config
from .handlers import default_router
from .logger import LoggerConfig, get_logger, init_logging
from .server import GatewayServer
from .worker_pool import WorkerPool

VERSION = "unknown"
GIT_COMMIT = "unknown"
COMMIT_TIME = "unknown"
BUILD_TIME = "unknown"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tcpgate", description="TCP packet gateway server.")
    parser.add_argument(
        "--config", default="config/config.yaml", help="path of the configuration file"
    )
    parser.add_argument(
        "-V", "--version", action="store_true", help="show version information and exit"
    )
    return parser


def version_text() -> str:
    return "\n".join(
        [
            f"Version: {VERSION}",
            f"Git Commit: {GIT_COMMIT}",
            f"Commit Time: {COMMIT_TIME}",
            f"Build Time: {BUILD_TIME}",
        ]
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.version:
        print(version_text())
        return 0

    # A missing or broken config file is not fatal: defaults are used.
    try:
        init_config(args.config)
    except (OSError, ConfigError):
        pass
    cfg = get_config()

    init_logging(
        LoggerConfig(
            level=cfg.log.level,
            path=cfg.log.path,
            stdout=cfg.log.stdout,
            filename=cfg.log.filename,
            max_size=cfg.log.max_size,
            max_backups=cfg.log.max_backups,
            max_age=cfg.log.max_age,
            engine_level=cfg.log.gnet_level,
        )
    )
    log = get_logger()
    log.info(
        "logging initialised",
        extra={
            "fields": {"level": cfg.log.level, "path": cfg.log.path, "stdout": cfg.log.stdout}
        },
    )

    pool = WorkerPool(cfg.server.worker_pool_size, cfg.server.task_queue_size, default_router())
    pool.start()
    server = GatewayServer(cfg.server, pool)

    def on_signal(signum, frame):
        log.info("shutdown signal received", extra={"fields": {"signal": signal.Signals(signum).name}})
        server.close_engine()
        log.info("server shutdown requested")

    previous = {sig: signal.signal(sig, on_signal) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        server.start()
    except OSError as exc:
        log.error("server failed", extra={"fields": {"error": str(exc)}})
        return 1
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    log.info("server stopped")
    return 0