"""
Audit one site from the command line and print the JSON report.

    python -m site_audit example.com --enhanced --max-pages 50
    python -m site_audit example.com --enhanced --audit-id 42
"""

import argparse
import asyncio
import json
import logging
import sys

from .config import CONCURRENT_REQUESTS, LOG_LEVEL, MAX_PAGES, REDIS_URL, RENDER_ENABLED
from .exceptions import OverrideStoreError, SiteUnreachableError
from .orchestrator import SiteCrawler
from .overrides import OverrideService, RedisOverrideRepository
from .renderer import PlaywrightRenderer
from .service import AuditService

logger = logging.getLogger("site_audit")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="site_audit", description="Crawl a small-business site and audit its SEO.")
    parser.add_argument("url", help="site to audit; https:// is assumed when no scheme is given")
    parser.add_argument("--enhanced", action="store_true", help="run the full factor analysis")
    parser.add_argument("--max-pages", type=int, default=MAX_PAGES)
    parser.add_argument("--concurrency", type=int, default=CONCURRENT_REQUESTS)
    parser.add_argument("--render", action="store_true", default=RENDER_ENABLED,
                        help="render JS-heavy pages with headless Chromium (needs the 'render' extra)")
    parser.add_argument("--output", help="write the report to this file instead of stdout")
    parser.add_argument("--audit-id", help="apply the page priority overrides stored under this audit id (enhanced only)")
    parser.add_argument("--redis-url", default=REDIS_URL, help="override store used with --audit-id")
    return parser


def _print_progress(stage: str, percent: int) -> None:
    logger.info("%3d%% %s", percent, stage)


async def run(args: argparse.Namespace) -> dict:
    renderer = PlaywrightRenderer() if args.render else None
    crawler = SiteCrawler(max_pages=args.max_pages, concurrency=args.concurrency, renderer=renderer)
    override_service = None
    if args.audit_id:
        if args.enhanced:
            override_service = OverrideService(RedisOverrideRepository(url=args.redis_url))
        else:
            logger.warning("--audit-id only applies to --enhanced audits, ignoring it")
    service = AuditService(crawler=crawler, override_service=override_service)
    try:
        if args.enhanced:
            report = await service.crawl_and_audit_enhanced(
                args.url, on_progress=_print_progress, audit_id=args.audit_id
            )
        else:
            report = await service.crawl_and_audit(args.url, on_progress=_print_progress)
    finally:
        if renderer is not None:
            await renderer.close()
    return report.to_dict()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        data = asyncio.run(run(args))
    except SiteUnreachableError as exc:
        logger.error("%s", exc)
        return 2
    except OverrideStoreError as exc:
        logger.error("Priority overrides unavailable: %s", exc)
        return 3

    output = json.dumps(data, indent=2, default=str)
    if args.output:
        with open(args.output, "w", encoding="utf-8") as fh:
            fh.write(output)
        logger.info("Report written to %s", args.output)
    else:
        print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
