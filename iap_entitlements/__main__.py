"""Entry point: python -m iap_entitlements."""

import argparse
import os
import sys
from typing import Optional

import uvicorn

APP_IMPORT = "iap_entitlements.main:app"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m iap_entitlements",
        description="Subscription entitlement service for App Store and Google Play purchases",
    )

    server = parser.add_argument_group("server")
    server.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"), help="Bind address (default: 0.0.0.0)")
    server.add_argument("--port", type=int, default=int(os.getenv("PORT", "8080")), help="Bind port (default: 8080)")
    server.add_argument(
        "--reload",
        action="store_true",
        default=os.getenv("RELOAD", "false").lower() == "true",
        help="Auto-reload on code changes (development only)",
    )

    logs = parser.add_argument_group("logging")
    logs.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.getenv("LOG_LEVEL", "INFO"),
    )
    logs.add_argument("--log-format", choices=["json", "console"], default=os.getenv("LOG_FORMAT", "json"))

    stores = parser.add_argument_group("stores")
    stores.add_argument(
        "--config",
        default=os.getenv("CONFIG_PATH", "config/entitlements.yaml"),
        help="Store credentials file (default: config/entitlements.yaml)",
    )
    stores.add_argument(
        "--environment",
        choices=["sandbox", "production"],
        default=os.getenv("STORE_ENVIRONMENT"),
        help="Store environment; overrides the config file",
    )
    stores.add_argument(
        "--rtdn",
        choices=["on", "off"],
        default=None,
        help="Force the Google Play RTDN pull listener on or off",
    )
    return parser


def export_settings(args: argparse.Namespace) -> None:
    """Pass CLI choices to the app, which uvicorn imports by path."""
    os.environ["LOG_LEVEL"] = args.log_level
    os.environ["LOG_FORMAT"] = args.log_format
    os.environ["CONFIG_PATH"] = args.config
    if args.environment:
        os.environ["STORE_ENVIRONMENT"] = args.environment
    if args.rtdn:
        os.environ["RTDN_ENABLED"] = "true" if args.rtdn == "on" else "false"


def main(argv: Optional[list[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    export_settings(args)

    if args.log_format == "console":
        print(f"IAP Entitlements on {args.host}:{args.port}")
        print(f"  config:      {args.config}")
        print(f"  environment: {args.environment or 'from config'}")
        print(f"  rtdn:        {args.rtdn or 'from config'}")

    try:
        uvicorn.run(
            APP_IMPORT,
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
            reload=args.reload,
            access_log=False,  # RequestLoggingMiddleware logs requests
        )
    except KeyboardInterrupt:
        sys.exit(0)
    except Exception as e:
        print(f"Failed to start service: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
