#!/usr/bin/env python
"""
Regenerate Face Embeddings

This script recomputes the stored face identifier of every reference that has a
face photo, using the currently active face recognition provider. Run it after
switching providers so stored identifiers match the new provider.

Usage:
    python -m facesearch.cli.regenerate_embeddings [--batch-size 5] [--delay 1.0]
"""
import argparse
import asyncio
import sys
import time
from typing import List, Optional

from facesearch.core.config import settings
from facesearch.core.container import ServiceContainer
from facesearch.core.exceptions import NoActiveProviderError
from facesearch.core.logging import get_logger, setup_logging
from facesearch.domain.value_objects.recognition import RegenerationReport
from facesearch.services.face_indexing import FaceIndexingService

logger = get_logger(__name__)


def print_report(report: RegenerationReport, elapsed: float) -> None:
    """Print regeneration results."""
    print("\n===== Regeneration Results =====")
    print(f"Total references: {report.total}")
    print(f"Regenerated: {report.success}")
    print(f"Failed: {report.failed}")
    print(f"Total time: {elapsed:.2f} seconds")

    if report.errors:
        print("\nErrors:")
        for error in report.errors:
            print(f"  - {error}")

    print("================================")


async def main(args: argparse.Namespace) -> int:
    """Main entry point.

    Returns:
        Process exit code: 0 when every reference was regenerated, 1 otherwise
    """
    container = ServiceContainer()
    await container.initialize(args.database_url)

    try:
        service = FaceIndexingService(
            config_cache=container.provider_config_cache,
            embeddings=container.embedding_repository,
            references=container.reference_repository,
            image_loader=container.image_loader,
            batch_size=args.batch_size,
            concurrency=args.concurrency,
            batch_delay=args.delay,
        )

        start_time = time.time()
        try:
            report = await service.regenerate_all()
        except NoActiveProviderError as e:
            print(f"Error: {e}")
            return 1

        print_report(report, time.time() - start_time)
        return 1 if report.failed else 0

    finally:
        await container.cleanup()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Regenerate stored face embeddings")
    parser.add_argument(
        "--batch-size", type=int, default=settings.REGENERATION_BATCH_SIZE,
        help="References per batch"
    )
    parser.add_argument(
        "--concurrency", type=int, default=settings.REGENERATION_CONCURRENCY,
        help="Maximum references processed at once"
    )
    parser.add_argument(
        "--delay", type=float, default=settings.REGENERATION_BATCH_DELAY_SECONDS,
        help="Seconds to wait between batches"
    )
    parser.add_argument("--database-url", help="Database URL, defaults to DATABASE_URL")
    return parser.parse_args(argv)


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(main(parse_args())))
