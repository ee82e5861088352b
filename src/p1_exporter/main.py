"""FastAPI application for the P1 exporter."""

import argparse
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from p1_exporter.backends import create_backend
from p1_exporter.config import AppConfig, load_config
from p1_exporter.frontends import create_frontend

logger = logging.getLogger("p1_exporter")


def create_app(config: AppConfig) -> FastAPI:
    """Build the application for ``config``; backend and frontend start with the lifespan."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        backend_type = config.backend.type
        backend = create_backend(config.backend)
        logger.info("Starting backend (%s)...", backend_type)
        await backend.start()

        frontend_type = config.frontend.type
        frontend = create_frontend(config.frontend, backend)
        app.include_router(frontend.get_router())
        await frontend.start()

        logger.info(
            "P1 exporter ready, frontend=%s, backend=%s, listening on %s:%d",
            frontend_type,
            backend_type,
            config.server.host,
            config.server.port,
        )

        yield

        # Shutdown
        await frontend.stop()
        await backend.stop()

    return FastAPI(title="P1 Exporter", lifespan=lifespan)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Prometheus exporter for DSMR P1 telegrams")
    parser.add_argument(
        "-c",
        "--config",
        default=None,
        help="Path to config YAML file",
    )
    parser.add_argument(
        "-a",
        "--address",
        default=None,
        help="Address to listen on, HOST:PORT (default 127.0.0.1:4545)",
    )
    parser.add_argument(
        "-p",
        "--p1-address",
        default=None,
        help="P1 reader address, HOST:PORT",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def run() -> None:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args()
    if args.config is None and args.p1_address is None:
        parser.error("either --config or --p1-address is required")

    try:
        config = load_config(args.config, address=args.address, p1_address=args.p1_address)
    except ValueError as exc:
        parser.error(str(exc))
    if config.backend.type == "p1" and config.backend.p1 is None:
        parser.error("no P1 reader configured (backend.p1 or --p1-address)")

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)
