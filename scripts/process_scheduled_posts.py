#!/usr/bin/env python3
"""
Publish Due Scheduled Posts
===========================
Run one batch pass of the post scheduler against the configured database.
Meant for cron or any external scheduler that cannot call the HTTP trigger.

Usage:
    python scripts/process_scheduled_posts.py [--batch-size 10] [--dry-run]
"""

import argparse
import sys

from smap.clock import utcnow
from smap.config import get_settings
from smap.database import SessionLocal, engine, Base
from smap.worker.scheduler import PostScheduler, select_due_posts


def process(batch_size: int, dry_run: bool = False) -> int:
    """Run one pass; returns the number of posts that failed."""
    settings = get_settings().model_copy(update={"scheduler_batch_size": batch_size})

    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        if dry_run:
            due = select_due_posts(db, utcnow(), batch_size)
            print(f"[DRY RUN] {len(due)} posts due")
            for post in due:
                print(f"  #{post.id} {post.platform} at {post.scheduled_time.isoformat()}Z (retries {post.retry_count}/{post.max_retries})")
            return 0

        summary = PostScheduler(db, settings=settings).process_due_posts()
    finally:
        db.close()

    print(f"Processed {summary.processed} posts: {summary.successful} published, "
          f"{summary.failed} failed, {summary.skipped} skipped")
    for result in summary.results:
        if result.success:
            print(f"  ✓ #{result.post_id} -> {result.published_post_url}")
        elif result.skipped:
            print(f"  - #{result.post_id} skipped ({result.status})")
        else:
            print(f"  ✗ #{result.post_id} {result.status}: {result.error}")
    return summary.failed


def main():
    parser = argparse.ArgumentParser(description="Publish scheduled posts that are due")
    parser.add_argument(
        "--batch-size",
        type=int,
        default=get_settings().scheduler_batch_size,
        help="Maximum posts to attempt in this pass (default: 10)"
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List due posts without publishing them"
    )
    args = parser.parse_args()

    failed = process(args.batch_size, args.dry_run)
    sys.exit(1 if failed else 0)


if __name__ == "__main__":
    main()
