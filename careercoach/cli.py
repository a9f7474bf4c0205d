from __future__ import annotations

import argparse
import logging
import sys

from .config import Settings
from .db import Database
from .errors import CareerCoachError
from .insights import refresh_all_insights
from .llm import TextGenerator

logger = logging.getLogger("careercoach.cli")


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def run_refresh_all(settings: Settings) -> int:
    db = Database.from_settings(settings)
    db.init_schema()
    generator = TextGenerator.from_settings(settings)
    try:
        refreshed = refresh_all_insights(db, generator)
    except CareerCoachError as exc:
        logger.error("Weekly refresh aborted: %s", exc.message)
        return 1
    logger.info("Refreshed: %s", ", ".join(refreshed) or "(none)")
    return 0


def run_init_db(settings: Settings) -> int:
    Database.from_settings(settings).init_schema()
    logger.info("Database schema ready.")
    return 0


def run_serve(host: str, port: int, reload: bool) -> int:
    import uvicorn

    uvicorn.run("careercoach.main:create_app", factory=True, host=host, port=port, reload=reload)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="careercoach", description="Career coaching backend")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("refresh-all", help="Regenerate insights for every stored industry")
    subparsers.add_parser("init-db", help="Create database tables if missing")

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", default="0.0.0.0", help="Bind host (default: 0.0.0.0)")
    serve.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args(argv)
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    if args.command == "refresh-all":
        return run_refresh_all(settings)
    if args.command == "init-db":
        return run_init_db(settings)
    return run_serve(args.host, args.port, args.reload)


if __name__ == "__main__":
    sys.exit(main())
