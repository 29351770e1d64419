"""Image search scraping: turn a phrase into candidate image URLs."""

from __future__ import annotations

import json
import logging
import re
from typing import List, Optional, Protocol, Sequence

import requests
from bs4 import BeautifulSoup

from .config import HarvestConfig

logger = logging.getLogger("image_harvest")

_EMBEDDED_MURL = re.compile(r'"murl":"(https?://[^"]+)"')
_ESCAPED_SLASH = re.compile(r"\\u002f", re.IGNORECASE)


class ExtractionStrategy(Protocol):
    """One way of pulling image URLs out of a search result page."""

    name: str

    def extract(self, html: str, soup: BeautifulSoup) -> List[str]:
        ...


class MetadataAttributeStrategy:
    """Read the JSON blob carried in the ``m`` attribute of each result link."""

    name = "metadata"

    def extract(self, html: str, soup: BeautifulSoup) -> List[str]:
        urls: List[str] = []
        for link in soup.select("a.iusc"):
            blob = link.get("m")
            if not blob:
                continue
            try:
                data = json.loads(blob)
            except ValueError:
                continue
            murl = data.get("murl") if isinstance(data, dict) else None
            if isinstance(murl, str) and murl:
                urls.append(murl)
        return urls


class ImageTagStrategy:
    """Fall back to thumbnail ``<img>`` tags, keeping absolute HTTP(S) sources."""

    name = "image-tags"

    def extract(self, html: str, soup: BeautifulSoup) -> List[str]:
        urls: List[str] = []
        for img in soup.select("img.mimg"):
            src = img.get("src") or img.get("data-src")
            if src and src.startswith(("http://", "https://")):
                urls.append(src)
        return urls


class EmbeddedUrlStrategy:
    """Scan the raw markup for ``"murl":"..."`` pairs embedded in scripts."""

    name = "embedded"

    def extract(self, html: str, soup: BeautifulSoup) -> List[str]:
        return [_ESCAPED_SLASH.sub("/", match) for match in _EMBEDDED_MURL.findall(html)]


DEFAULT_STRATEGIES: Sequence[ExtractionStrategy] = (
    MetadataAttributeStrategy(),
    ImageTagStrategy(),
    EmbeddedUrlStrategy(),
)


def extract_candidates(
    html: str,
    strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
    limit: int = 5,
) -> List[str]:
    """Run each strategy in order and keep the first non-empty result."""
    soup = BeautifulSoup(html, "html.parser")
    for strategy in strategies:
        try:
            urls = strategy.extract(html, soup)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Extraction strategy %s failed", strategy.name)
            continue
        if urls:
            logger.debug("Strategy %s yielded %d candidates", strategy.name, len(urls))
            return urls[:limit]
    return []


class ImageSearchResolver:
    """Resolve a phrase to at most ``max_candidates`` image URLs.

    Failures are expected: a transport error or an unrecognised page both
    simply produce an empty list.
    """

    def __init__(
        self,
        config: HarvestConfig,
        session: Optional[requests.Session] = None,
        strategies: Sequence[ExtractionStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self.strategies = list(strategies)

    def _headers(self) -> dict:
        return {
            "User-Agent": self.config.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.5",
        }

    def resolve(self, phrase: str) -> List[str]:
        try:
            resp = self.session.get(
                self.config.search_url,
                params={"q": phrase, "first": 1},
                headers=self._headers(),
                timeout=self.config.search_timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Image search failed for %r: %s", phrase, exc)
            return []

        urls = extract_candidates(resp.text, self.strategies, self.config.max_candidates)
        if not urls:
            logger.info("No candidates found for %r", phrase)
        return urls
