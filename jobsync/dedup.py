"""Cross-source deduplication.

Listings are grouped by fingerprint (normalized company | title |
location). A source that returned the same posting more than once (same
URL) counts it once. Within a group:

  - A source that contributed more than one listing is a
    multi-requisition source: its listings are distinct openings and are
    all kept. Single listings from other sources in that group are
    dropped, since each presumably mirrors one of those openings.
  - Otherwise every source contributed at most one listing, and only the
    one with the longest description survives (first wins on ties).
    Employer boards return full descriptions where search aggregators
    return snippets, so length is the completeness proxy.

Output order follows the first appearance of each group in the input.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict

from jobsync.models import RawListing

logger = logging.getLogger(__name__)


def group_by_fingerprint(listings: list[RawListing]) -> dict[str, list[RawListing]]:
    groups: dict[str, list[RawListing]] = defaultdict(list)
    for listing in listings:
        groups[listing.fingerprint].append(listing)
    return groups


def _collapse_repeats(group: list[RawListing]) -> list[RawListing]:
    """Drop repeats of the same posting (same source and URL) from one source.

    The copy with the longest description is kept, at the position of the
    first copy.
    """
    kept: dict[tuple[str, str], RawListing] = {}
    for listing in group:
        key = (listing.source, listing.source_url)
        current = kept.get(key)
        if current is None or len(listing.description) > len(current.description):
            kept[key] = listing
    return list(kept.values())


def _resolve_group(group: list[RawListing]) -> list[RawListing]:
    group = _collapse_repeats(group)
    if len(group) == 1:
        return group

    per_source = Counter(listing.source for listing in group)
    multi_req = {source for source, count in per_source.items() if count > 1}

    if multi_req:
        return [listing for listing in group if listing.source in multi_req]

    best = group[0]
    for listing in group[1:]:
        if len(listing.description) > len(best.description):
            best = listing
    return [best]


def deduplicate_listings(listings: list[RawListing]) -> list[RawListing]:
    """Collapse one run's raw listings into the canonical set."""
    groups = group_by_fingerprint(listings)

    result: list[RawListing] = []
    multi_req_groups = 0
    for group in groups.values():
        kept = _resolve_group(group)
        if len(kept) > 1:
            multi_req_groups += 1
        result.extend(kept)

    removed = len(listings) - len(result)
    if removed:
        logger.info(
            "Dedup: %d -> %d listings (%d duplicates removed)",
            len(listings), len(result), removed,
        )
    if multi_req_groups:
        logger.debug("Dedup: %d groups kept as multi-requisition openings", multi_req_groups)

    return result
