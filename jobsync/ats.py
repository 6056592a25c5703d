"""Employer board detection.

For each firm in the company registry we guess a few board slugs and
probe Greenhouse, then Lever. The first hit wins; a firm with no hit is
recorded as provider "none" so it is not probed again until its cache
entry expires (30 days).

Cached payload per firm:
    {"provider": "greenhouse" | "lever" | "none",
     "board_token": "<slug>", "company": "<firm name>"}
"""

from __future__ import annotations

import csv
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from jobsync.cache import TTLCache
from jobsync.scrapers.base import BaseScraper, Endpoint

logger = logging.getLogger(__name__)

PROVIDERS = ("greenhouse", "lever")

_LEGAL_SUFFIXES = re.compile(
    r"\b(inc|llc|corp|corporation|lp|llp|ltd|limited|group|co|pc|pllc|psc|associates|the)\b",
    re.IGNORECASE,
)
_TLD = re.compile(r"\.(com|org|net|io|co|us|ca|uk).*$")


@dataclass(frozen=True)
class Firm:
    name: str
    website: str = ""


@dataclass
class DetectionStats:
    probed: int = 0
    found: int = 0
    skipped: int = 0
    greenhouse: int = 0
    lever: int = 0


def load_firm_registry(path: str | Path) -> list[Firm]:
    """Read firms from a CSV with `Account Name` and `Website` columns."""
    firms = []
    with open(path, newline="", encoding="utf-8-sig") as f:
        for row in csv.DictReader(f):
            name = (row.get("Account Name") or "").strip()
            if name:
                firms.append(Firm(name=name, website=(row.get("Website") or "").strip()))
    logger.info("Loaded %d firms from %s", len(firms), path)
    return firms


def candidate_slugs(name: str, website: str = "") -> list[str]:
    """Board slugs worth probing for a firm, most likely first.

    "S9 Architecture" with "https://www.s9arch.com" yields
    ["s9architecture", "s9-architecture", "s9arch"].
    """
    slugs: list[str] = []

    base = _LEGAL_SUFFIXES.sub("", name.lower())
    base = re.sub(r"[^a-z0-9 ]", "", base)

    joined = re.sub(r"\s+", "", base)
    if joined:
        slugs.append(joined)

    hyphenated = re.sub(r"\s+", "-", base.strip())
    hyphenated = re.sub(r"-+", "-", hyphenated).strip("-")
    if hyphenated and hyphenated not in slugs:
        slugs.append(hyphenated)

    if website:
        url = website if website.startswith("http") else f"https://{website}"
        hostname = (urlparse(url).hostname or "").lower()
        domain = _TLD.sub("", re.sub(r"^www\.", "", hostname))
        domain = re.sub(r"[^a-z0-9]", "", domain)
        if len(domain) > 2 and domain not in slugs:
            slugs.append(domain)

    return slugs


def detect_provider(firm: Firm, probers: dict[str, BaseScraper]) -> dict:
    """Probe each provider in order and return the cache payload for `firm`."""
    slugs = candidate_slugs(firm.name, firm.website)
    for provider in PROVIDERS:
        scraper = probers.get(provider)
        if scraper is None:
            continue
        for slug in slugs:
            if scraper.probe(slug):
                logger.info("  %s: %s -> %s", provider, firm.name, slug)
                return {"provider": provider, "board_token": slug, "company": firm.name}
    return {"provider": "none", "board_token": "", "company": firm.name}


def detect_all(
    firms: list[Firm],
    cache: TTLCache,
    probers: dict[str, BaseScraper],
    force: bool = False,
    limit: int | None = None,
) -> DetectionStats:
    """Detect boards for every firm, skipping firms with a valid cache entry."""
    stats = DetectionStats()

    for firm in firms:
        if limit is not None and stats.probed >= limit:
            break

        cached = None if force else cache.get(firm.name)
        if cached is not None:
            stats.skipped += 1
            _count_provider(stats, cached.get("provider"))
            continue

        result = detect_provider(firm, probers)
        cache.put(firm.name, result)
        stats.probed += 1
        if result["provider"] != "none":
            stats.found += 1
            _count_provider(stats, result["provider"])

    logger.info(
        "Board detection: %d probed, %d found (%d greenhouse, %d lever), %d cached",
        stats.probed, stats.found, stats.greenhouse, stats.lever, stats.skipped,
    )
    return stats


def detected_boards(cache: TTLCache, provider: str) -> list[Endpoint]:
    """Endpoints for every valid cached board on `provider`."""
    boards = []
    for _key, payload in cache.items():
        if payload.get("provider") == provider and payload.get("board_token"):
            boards.append(
                Endpoint(name=payload["board_token"], company=payload.get("company", ""))
            )
    return boards


def _count_provider(stats: DetectionStats, provider: str | None) -> None:
    if provider == "greenhouse":
        stats.greenhouse += 1
    elif provider == "lever":
        stats.lever += 1
