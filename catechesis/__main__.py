"""
catechesis.__main__ — Maintenance CLI for ``python -m catechesis``
====================================================================

Commands::

    python -m catechesis init-db               # create tables + seed catalog
    python -m catechesis seed                  # seed badges / achievements only
    python -m catechesis snapshot [--date D]   # run the analytics builders
    python -m catechesis rebuild-leaderboards  # recompute every board
    python -m catechesis serve [--port 8000]   # run the API under uvicorn
"""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import date

from dotenv import load_dotenv

from catechesis.database.engine import create_db_engine, init_db
from catechesis.database.seed import seed_catalog
from catechesis.services.analytics_service import run_nightly_snapshot
from catechesis.services.community_service import rebuild_all_leaderboards

logger = logging.getLogger("catechesis")


def _parse_date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"not an ISO date: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catechesis", description=__doc__.splitlines()[1])
    parser.add_argument("--database-url", default=None, help="overrides DATABASE_URL")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create tables and seed the badge catalog")
    sub.add_parser("seed", help="insert missing badges and achievements")
    snap = sub.add_parser("snapshot", help="build the analytics snapshots for one date")
    snap.add_argument("--date", type=_parse_date, default=None, help="YYYY-MM-DD (default: today, UTC)")
    sub.add_parser("rebuild-leaderboards", help="recompute weekly, monthly and all-time boards")
    serve = sub.add_parser("serve", help="run the HTTP API under uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv()
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
        datefmt="%H:%M:%S",
    )
    args = build_parser().parse_args(argv)
    if args.command == "serve":
        import uvicorn

        uvicorn.run("catechesis.api.main:app", host=args.host, port=args.port)
        return 0

    engine = create_db_engine(args.database_url)

    if args.command == "init-db":
        init_db(engine)
        logger.info("Database initialised")
    elif args.command == "seed":
        result = seed_catalog(engine)
        logger.info("Seed complete: %s", result)
    elif args.command == "snapshot":
        result = run_nightly_snapshot(engine, args.date)
        if not all(result.values()):
            logger.error("Snapshot finished with failures: %s", result)
            return 1
    elif args.command == "rebuild-leaderboards":
        result = rebuild_all_leaderboards(engine)
        if any("error" in board for board in result.values()):
            logger.error("Leaderboard rebuild finished with failures: %s", result)
            return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
