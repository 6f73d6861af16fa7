"""
Recomputes follower/following and like/comment counters from the underlying
records and reports (or fixes) any drift.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from aura.counters import recount_post, recount_user
from aura.dependencies import get_store
from aura.store import Query
from shared.firebase_constants import POSTS_COLLECTION, USERS_COLLECTION

logger = logging.getLogger(__name__)


def main() -> int:
    parser = argparse.ArgumentParser(description="Recount AURA counters")
    parser.add_argument(
        "--apply",
        action="store_true",
        help="Write corrected values instead of only reporting drift",
    )
    parser.add_argument(
        "--users-only",
        action="store_true",
        help="Skip post like/comment counters",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(name)s %(levelname)s %(asctime)s %(message)s",
        datefmt="%m/%d/%Y %I:%M:%S %p",
    )

    store = get_store()
    drifted = 0
    for snapshot in store.query(Query(USERS_COLLECTION)):
        if recount_user(store, snapshot.id, apply=args.apply):
            drifted += 1
    if not args.users_only:
        for snapshot in store.query(Query(POSTS_COLLECTION)):
            if recount_post(store, snapshot.id, apply=args.apply):
                drifted += 1

    logger.info(
        "%d documents with counter drift%s", drifted, " (fixed)" if args.apply else ""
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
