"""CLI entry point: run the service or recompute stored ratings."""

from __future__ import annotations

import argparse
import json
import sys

from care_board_service.config import get_settings


def _serve() -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "care_board_service.app:create_app",
        factory=True,
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level,
    )
    return 0


def _recalculate_ratings(user_id: str | None) -> int:
    from care_board_service.logging import setup_logging
    from care_board_service.services.directory_store import UserDirectory
    from care_board_service.services.reputation import ReputationAggregator
    from care_board_service.services.review_store import ReviewStore
    from care_board_service.services.task_store import TaskStore

    settings = get_settings()
    setup_logging(settings.logging.level, settings.service.name, settings.logging.directory)

    db_path = settings.database.path
    task_store = TaskStore(db_path=db_path)
    review_store = ReviewStore(db_path=db_path)
    directory = UserDirectory(db_path=db_path)
    aggregator = ReputationAggregator(
        task_store=task_store,
        review_store=review_store,
        directory=directory,
    )
    try:
        if user_id is not None:
            aggregator.recompute_user(user_id)
            summary = aggregator.get_ratings(user_id)
        else:
            summary = {"users_recalculated": aggregator.recompute_all()}
    finally:
        task_store.close()
        review_store.close()
        directory.close()

    sys.stdout.write(json.dumps(summary) + "\n")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="care-board",
        description="Pet-care task board service.",
    )
    subcommands = parser.add_subparsers(dest="command", required=True)

    subcommands.add_parser("serve", help="Run the HTTP service.")

    recalc = subcommands.add_parser(
        "recalculate-ratings",
        help="Recompute owner and helper ratings from the full review history.",
    )
    recalc.add_argument(
        "--user-id",
        type=str,
        metavar="ID",
        help="Only recompute this user's ratings (default: every known user).",
    )

    args = parser.parse_args(argv)

    if args.command == "serve":
        return _serve()
    return _recalculate_ratings(args.user_id)


if __name__ == "__main__":
    sys.exit(main())
