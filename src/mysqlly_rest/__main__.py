"""CLI entry point for mysqlly-rest server."""

import argparse
import logging

import uvicorn

from ._app import create_app
from ._config import Settings, build_registry, load_settings_from_yaml


def main() -> None:
    parser = argparse.ArgumentParser(description="mysqlly REST API server")
    parser.add_argument(
        "--config",
        help="Path to settings YAML file",
    )
    parser.add_argument(
        "--state-file",
        dest="state_file",
        help="Where connection configs are persisted (default: ~/.mysqlly/connections.yaml)",
    )
    parser.add_argument(
        "--namespace",
        help="Prefix for passwords stored in the OS keyring (default: mysql)",
    )
    parser.add_argument(
        "--ephemeral",
        action="store_true",
        help="Keep connections and passwords in memory only.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    parser.add_argument(
        "--host",
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--cors-origins",
        nargs="*",
        help="Allowed CORS origins",
    )
    parser.add_argument(
        "--log-level",
        default="info",
        choices=["debug", "info", "warning", "error"],
        help="Logging level (default: info)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = load_settings_from_yaml(args.config) if args.config else Settings()
    overrides: dict = {}
    if args.state_file:
        overrides["state_file"] = args.state_file
    if args.namespace:
        overrides["namespace"] = args.namespace
    if args.ephemeral:
        overrides["ephemeral"] = True
    if args.cors_origins:
        overrides["cors_origins"] = args.cors_origins
    if overrides:
        settings = Settings(**{**settings.model_dump(), **overrides})

    registry = build_registry(settings)
    app = create_app(
        registry,
        page_size=settings.page_size,
        cors_origins=settings.cors_origins,
    )
    uvicorn.run(app, host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
