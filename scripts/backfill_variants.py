#!/usr/bin/env python3
"""
Generate missing preview/thumbnail variants for originals already in storage.
Run this to backfill objects uploaded through presigned URLs, which never pass
through the server-side variant renderer.

Usage:
    python -m scripts.backfill_variants [--prefix shoot/] [--dry-run] [--limit N]
"""
import os
import sys
import argparse

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import logger
from utils.storage import (
    ObjectStatus,
    SizeTier,
    StorageError,
    is_variant_key,
    key_for_tier,
    list_keys,
    probe,
    read_bytes_key,
    write_variants,
)

# Uploads land at the bucket root, so the default scan covers everything
DEFAULT_PREFIX = ''

CONTENT_TYPES = {
    'jpg': 'image/jpeg',
    'jpeg': 'image/jpeg',
    'png': 'image/png',
    'webp': 'image/webp',
}


def content_type_for(key: str):
    return CONTENT_TYPES.get(key.rpartition('.')[2].lower())


def missing_tiers(key: str) -> list[SizeTier]:
    """Tiers whose derived object is confirmed absent. Probe errors are skipped, not rebuilt."""
    missing = []
    for tier in (SizeTier.PREVIEW, SizeTier.THUMBNAIL):
        if probe(key_for_tier(key, tier)) is ObjectStatus.NOT_FOUND:
            missing.append(tier)
    return missing


def backfill(prefix: str = DEFAULT_PREFIX, dry_run: bool = False, limit: int = 0, max_keys: int = 10000) -> tuple[int, int]:
    """Scan ``prefix`` and render missing variants. Returns (originals_processed, variants_written)."""
    processed = 0
    written = 0
    for key in list_keys(prefix, max_keys=max_keys):
        ct = content_type_for(key)
        if not ct or is_variant_key(key):
            continue
        tiers = missing_tiers(key)
        if not tiers:
            continue
        processed += 1

        if dry_run:
            logger.info(f"[DRY-RUN] Would render {', '.join(t.value for t in tiers)} for {key}")
            written += len(tiers)
        else:
            data = read_bytes_key(key)
            if not data:
                logger.warning(f"Could not read: {key}")
                continue
            written += len(write_variants(key, data, ct, tiers=tiers))

        if limit > 0 and processed >= limit:
            logger.info(f"Reached limit of {limit} originals")
            break
    return processed, written


def main():
    parser = argparse.ArgumentParser(description='Generate missing preview/thumbnail variants')
    parser.add_argument('--prefix', type=str, default=DEFAULT_PREFIX, help='Key prefix to scan (default: whole bucket)')
    parser.add_argument('--dry-run', action='store_true', help='Show what would be done without making changes')
    parser.add_argument('--limit', type=int, default=0, help='Maximum number of originals to process (0 = unlimited)')
    args = parser.parse_args()

    logger.info(f"{'[DRY-RUN] ' if args.dry_run else ''}Scanning prefix: {args.prefix or '(all)'}")
    try:
        processed, written = backfill(args.prefix, dry_run=args.dry_run, limit=args.limit)
    except StorageError as ex:
        logger.error(f"Backfill aborted: {ex}")
        sys.exit(1)
    logger.info(f"{'[DRY-RUN] ' if args.dry_run else ''}Complete: {written} variants for {processed} originals")


if __name__ == '__main__':
    main()
