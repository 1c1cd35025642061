from __future__ import annotations

import argparse
import asyncio
import json
import logging
import math
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional

import asyncpg
import uvicorn
from dotenv import load_dotenv
from pydantic import ValidationError

from app import create_app
from cache import MemoryCache
from config import AppConfig
from database import DatabaseConnectionError, close_pool, create_pool
from sweeper import CacheSweeper
from telemetry import Telemetry

VERSION = "1.0.0"

_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"

# Attributes every LogRecord carries; anything else came in through ``extra``.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}


class JsonFormatter(logging.Formatter):
    """Render records as one JSON object per line, including ``extra`` fields."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str, ensure_ascii=False)


def configure_logging(level: str = "info", fmt: str = "json", output: str = "stdout") -> None:
    """Initialise root logging for the API process."""
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Unknown log level: {level}")

    if output == "stdout":
        handler: logging.Handler = logging.StreamHandler(sys.stdout)
    elif output == "stderr":
        handler = logging.StreamHandler(sys.stderr)
    else:
        handler = logging.FileHandler(output, encoding="utf-8")

    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))

    logging.basicConfig(level=numeric_level, handlers=[handler], force=True)


@dataclass
class AppContext:
    """Bundle for the main application components."""

    config: AppConfig
    cache: MemoryCache[Any]
    telemetry: Telemetry
    sweeper: CacheSweeper
    db_pool: Optional[asyncpg.Pool]


def create_context(config: AppConfig, db_pool: Optional[asyncpg.Pool] = None) -> AppContext:
    """Instantiate application components."""
    telemetry = Telemetry()
    cache: MemoryCache[Any] = MemoryCache(shards=config.cache_shards)
    sweeper = CacheSweeper(cache, config.cache_cleanup_interval, telemetry=telemetry)
    return AppContext(
        config=config,
        cache=cache,
        telemetry=telemetry,
        sweeper=sweeper,
        db_pool=db_pool,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SimplNews API server")
    parser.add_argument("--host", help="Override SERVER_HOST")
    parser.add_argument("--port", type=int, help="Override SERVER_PORT")
    parser.add_argument(
        "--skip-db",
        action="store_true",
        help="Start without connecting to PostgreSQL (developer preview).",
    )
    return parser


async def run(argv: Optional[List[str]] = None) -> None:
    """Bootstrap coroutine for the SimplNews API."""
    args = build_parser().parse_args(argv)
    load_dotenv()
    try:
        config = AppConfig()
    except ValidationError as exc:
        print(f"Failed to load configuration: {exc}", file=sys.stderr)
        sys.exit(1)

    try:
        configure_logging(config.log_level, config.log_format, config.log_output)
    except (ValueError, OSError) as exc:
        print(f"Failed to initialize logger: {exc}", file=sys.stderr)
        sys.exit(1)

    port = args.port or config.server_port
    logging.info(
        "SimplNews API starting",
        extra={"version": VERSION, "port": port, "environment": "development"},
    )

    context = create_context(config)
    if args.skip_db:
        logging.warning("Database connection skipped (--skip-db)")
    else:
        try:
            context.db_pool = await create_pool(config)
        except DatabaseConnectionError as exc:
            logging.error("Failed to connect to database: %s", exc)
            sys.exit(1)
        logging.info("Connected to PostgreSQL", extra={"database": config.database_name})

    try:
        await run_http_server(context, host=args.host or config.server_host, port=port)
    finally:
        await graceful_shutdown(context)
    logging.info("SimplNews API stopped")


def graceful_shutdown_seconds(timeout: timedelta) -> int:
    """uvicorn takes whole seconds; round up so a sub-second grace period is kept."""
    return math.ceil(timeout.total_seconds())


async def run_http_server(context: AppContext, *, host: str, port: int) -> None:
    """Serve the API until uvicorn receives SIGINT or SIGTERM."""
    app = create_app(context.config, context.sweeper)
    server_config = uvicorn.Config(
        app=app,
        host=host,
        port=port,
        loop="asyncio",
        log_config=None,
        timeout_graceful_shutdown=graceful_shutdown_seconds(context.config.shutdown_timeout),
    )
    server = uvicorn.Server(server_config)
    logging.info("Starting HTTP server", extra={"address": f"{host}:{port}"})
    await server.serve()


async def graceful_shutdown(context: AppContext) -> None:
    """Tear down long-lived resources."""
    await context.sweeper.stop()
    context.cache.clear()
    if context.db_pool is not None:
        try:
            await close_pool(context.db_pool)
        except OSError as exc:
            logging.warning("Shutdown encountered a network error: %s", exc)


def cli() -> None:
    asyncio.run(run())


if __name__ == "__main__":
    cli()
