"""CLI entrypoint for the Scholar same-name author search."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys

from dotenv import load_dotenv

from cache_store import CacheStore, JsonFileStorage
from engine import AggregationEngine, SearchOutcome
from models import ResultRecord
from profile_identity import fetch_profile_identity
from rate_limiter import DEFAULT_LIMITER, RateLimiter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line flags."""
    parser = argparse.ArgumentParser(description="Find other Google Scholar profiles sharing an author's name")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--profile-url", help="Scholar profile URL; its name is searched and its id excluded")
    target.add_argument("--name", help="Author name to search for")
    parser.add_argument("--exclude-id", default=None, help="Scholar user id to leave out of the results (with --name)")
    parser.add_argument("--more", type=int, default=0, help="Number of additional result pages to load from Scholar")
    parser.add_argument("--page", type=int, default=1, help="Display page to print (10 authors per page)")
    parser.add_argument("--skip-cache", action="store_true", help="Ignore cached results and search again")
    parser.add_argument(
        "--cache-file",
        default=os.getenv("SD_CACHE_FILE"),
        help="JSON file used to keep cached searches between runs (default: in-memory only)",
    )
    parser.add_argument("--json", action="store_true", help="Print all loaded records as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def format_record(record: ResultRecord) -> str:
    """Render one author as a short text block."""
    lines = [f"{record.name} <{record.profile_url}>"]
    lines.append(f"    {record.affiliation or 'Affiliation not listed'}")
    if record.citation_count is not None:
        lines.append(f"    Cited by {record.citation_count:,}")
    if record.contact_domain:
        lines.append(f"    Verified email at {record.contact_domain}")
    return "\n".join(lines)


def render(engine: AggregationEngine) -> str:
    """Render the engine's current display page with a summary header."""
    records = engine.records
    if not records:
        return "No other authors found with this name."

    header = f"Similar Authors ({len(records)}{'+' if engine.has_more else ''} found)"
    body = "\n".join(format_record(record) for record in engine.page_records())
    footer = f"Page {engine.current_page}/{engine.total_pages}"
    if engine.has_more:
        footer += " (more available)"
    return f"{header}\n\n{body}\n\n{footer}"


def render_error(outcome: SearchOutcome) -> str:
    lines = [outcome.message or "An unexpected error occurred."]
    if outcome.retry_hint:
        lines.append(outcome.retry_hint)
    return "\n".join(lines)


async def run(
    subject: str,
    exclude_id: str | None,
    more: int,
    page: int,
    skip_cache: bool,
    cache: CacheStore,
    limiter: RateLimiter | None = None,
) -> tuple[AggregationEngine, SearchOutcome]:
    """Run one search, load extra pages, and position the display cursor."""
    engine = AggregationEngine(cache=cache, limiter=limiter)
    outcome = await engine.start_search(subject, exclude_id=exclude_id, skip_cache=skip_cache)
    if not outcome.success:
        return engine, outcome

    for _ in range(max(more, 0)):
        if not engine.has_more:
            logging.info("No more pages available after %s records", len(engine.records))
            break
        more_outcome = await engine.load_more()
        if not more_outcome.success:
            # Already-loaded records are still printed.
            logging.warning("Load more stopped: %s", render_error(more_outcome))
            break

    engine.go_to_page(page)
    return engine, outcome


def main(argv: list[str] | None = None) -> int:
    """Initialize config and execute one search."""
    load_dotenv()
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if args.profile_url:
        # The profile request counts against the same floor as the searches.
        DEFAULT_LIMITER.record_fetch()
        try:
            identity = fetch_profile_identity(args.profile_url)
        except RuntimeError as exc:
            logging.error("Profile lookup failed: %s", exc)
            print(str(exc), file=sys.stderr)
            return 1
        if not identity.name:
            logging.error("Could not find an author name on %s", args.profile_url)
            return 2
        subject, exclude_id = identity.name, identity.user_id
    else:
        subject, exclude_id = args.name, args.exclude_id

    cache = CacheStore(JsonFileStorage(args.cache_file)) if args.cache_file else CacheStore()
    engine, outcome = asyncio.run(
        run(
            subject=subject,
            exclude_id=exclude_id,
            more=args.more,
            page=args.page,
            skip_cache=args.skip_cache,
            cache=cache,
            limiter=DEFAULT_LIMITER,
        )
    )

    if not outcome.success:
        print(render_error(outcome), file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([record.to_dict() for record in engine.records], indent=2, ensure_ascii=False))
    else:
        print(render(engine))
    return 0


if __name__ == "__main__":
    sys.exit(main())
