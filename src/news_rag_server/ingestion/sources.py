"""
News Sources

Fetches articles from the NewsAPI and Guardian HTTP APIs (when their keys are
configured) and from RSS feeds. A failing source is logged and skipped; it
never aborts the others.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import httpx
from bs4 import BeautifulSoup
from pydantic import ValidationError

from .models import Article
from .processing import remove_duplicates
from ..config import settings

logger = logging.getLogger("news_rag.sources")

NEWS_API_URL = "https://newsapi.org/v2/top-headlines"
GUARDIAN_API_URL = "https://content.guardianapis.com/search"

USER_AGENT = "Mozilla/5.0 (compatible; NewsBot/1.0)"

FEEDS_BY_REGION: Dict[str, List[str]] = {
    "us": [
        "https://rss.nytimes.com/services/xml/rss/nyt/US.xml",
        "https://rss.nytimes.com/services/xml/rss/nyt/Politics.xml",
        "https://rss.nytimes.com/services/xml/rss/nyt/Business.xml",
        "https://rss.nytimes.com/services/xml/rss/nyt/Technology.xml",
        "https://feeds.npr.org/1001/rss.xml",
        "https://www.cbsnews.com/latest/rss/main",
    ],
    "uk": [
        "https://feeds.bbci.co.uk/news/rss.xml",
        "https://feeds.bbci.co.uk/news/world/rss.xml",
        "https://feeds.bbci.co.uk/news/business/rss.xml",
        "https://www.theguardian.com/uk/rss",
    ],
    "world": [
        "https://rss.nytimes.com/services/xml/rss/nyt/World.xml",
        "https://www.aljazeera.com/xml/rss/all.xml",
        "https://feeds.bbci.co.uk/news/world/rss.xml",
    ],
    "tech": [
        "https://www.theverge.com/rss/index.xml",
        "https://techcrunch.com/feed/",
        "https://www.wired.com/feed/rss",
        "https://www.engadget.com/rss.xml",
    ],
}

SOURCE_NAMES = (
    ("bbc", "BBC News"),
    ("cnn", "CNN"),
    ("reuters", "Reuters"),
    ("nytimes", "The New York Times"),
    ("guardian", "The Guardian"),
    ("npr", "NPR"),
    ("aljazeera", "Al Jazeera"),
)


def source_name_for(feed_url: str) -> str:
    for marker, name in SOURCE_NAMES:
        if marker in feed_url:
            return name
    return "RSS Feed"


def _parse_datetime(value: Optional[str]) -> datetime:
    """Parse ISO 8601 or RFC 822 dates; fall back to now."""
    if value:
        try:
            return datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            pass
        try:
            return parsedate_to_datetime(value)
        except (TypeError, ValueError):
            pass
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------
# Parsers
# ---------------------------------------------------------------------

def parse_news_api(data: Dict[str, Any]) -> List[Article]:
    articles: List[Article] = []
    for item in data.get("articles") or []:
        title = item.get("title")
        content = item.get("content") or item.get("description")
        if not title or not content or "[Removed]" in title or not item.get("url"):
            continue
        articles.append(
            Article(
                title=title,
                content=content,
                url=item["url"],
                source=(item.get("source") or {}).get("name") or "NewsAPI",
                published_at=_parse_datetime(item.get("publishedAt")),
                author=item.get("author"),
                description=item.get("description"),
                image=item.get("urlToImage"),
            )
        )
    return articles


def parse_guardian(data: Dict[str, Any]) -> List[Article]:
    articles: List[Article] = []
    for item in (data.get("response") or {}).get("results") or []:
        fields = item.get("fields") or {}
        if not fields.get("bodyText") or not item.get("webUrl"):
            continue
        articles.append(
            Article(
                title=fields.get("headline") or item.get("webTitle") or "Untitled",
                content=fields["bodyText"],
                url=item["webUrl"],
                source="The Guardian",
                published_at=_parse_datetime(item.get("webPublicationDate")),
                author=fields.get("byline"),
                description=fields.get("trailText"),
                image=fields.get("thumbnail"),
            )
        )
    return articles


def parse_rss(xml: str, feed_url: str, limit: int) -> List[Article]:
    """
    Parse up to ``limit`` items of an RSS document.

    The item description (HTML stripped) is used as article content, falling
    back to the title.
    """
    soup = BeautifulSoup(xml, "xml")
    source = source_name_for(feed_url)
    articles: List[Article] = []

    for item in soup.find_all("item"):
        if len(articles) >= limit:
            break

        title = item.title.get_text(strip=True) if item.title else ""
        link = item.link.get_text(strip=True) if item.link else ""
        raw_description = item.description.get_text(strip=True) if item.description else ""
        description = BeautifulSoup(raw_description, "html.parser").get_text(" ", strip=True)
        pub_date = item.pubDate.get_text(strip=True) if item.pubDate else None

        if not title or not link:
            continue

        try:
            articles.append(
                Article(
                    title=title,
                    content=description or title,
                    url=link,
                    source=source,
                    published_at=_parse_datetime(pub_date),
                    description=description or title,
                )
            )
        except ValidationError:
            logger.debug("Skipping malformed RSS item from %s", feed_url)

    return articles


# ---------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------

class NewsFetcher:
    """Collects articles from every configured source."""

    def __init__(
        self,
        news_api_key: Optional[str] = None,
        guardian_api_key: Optional[str] = None,
        feeds: Optional[List[str]] = None,
        max_per_feed: Optional[int] = None,
        max_total: Optional[int] = None,
        max_articles: Optional[int] = None,
        feed_delay: float = 0.1,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if news_api_key is None and settings.news_api_key is not None:
            news_api_key = settings.news_api_key.get_secret_value()
        if guardian_api_key is None and settings.guardian_api_key is not None:
            guardian_api_key = settings.guardian_api_key.get_secret_value()

        self.news_api_key = news_api_key
        self.guardian_api_key = guardian_api_key
        self.feeds = feeds if feeds is not None else self._configured_feeds()
        self.max_per_feed = max_per_feed or settings.rss_max_per_feed
        self.max_total = max_total or settings.rss_max_total
        self.max_articles = max_articles or settings.ingest_max_articles
        self.feed_delay = feed_delay
        self._http_client = http_client

    @staticmethod
    def _configured_feeds() -> List[str]:
        explicit = settings.split_csv(settings.rss_feeds)
        if explicit:
            return explicit

        feeds: List[str] = []
        for region in settings.split_csv(settings.rss_countries.lower()):
            for url in FEEDS_BY_REGION.get(region, []):
                if url not in feeds:
                    feeds.append(url)
        return feeds

    async def fetch_latest_news(self) -> List[Article]:
        """Fetch from all sources, deduplicate, and cap the total."""
        if self._http_client is not None:
            articles = await self._fetch_all(self._http_client)
        else:
            async with httpx.AsyncClient(
                timeout=settings.rss_timeout,
                headers={"User-Agent": USER_AGENT},
                follow_redirects=True,
            ) as client:
                articles = await self._fetch_all(client)

        unique = remove_duplicates(articles)[: self.max_articles]
        logger.info("Total articles collected: %d", len(unique))
        return unique

    async def _fetch_all(self, client: httpx.AsyncClient) -> List[Article]:
        articles: List[Article] = []

        logger.info("Fetching articles from API sources...")
        for name, fetch in (
            ("NewsAPI", self.fetch_news_api),
            ("Guardian", self.fetch_guardian),
        ):
            try:
                batch = await fetch(client)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Failed to fetch from %s: %s", name, exc)
                continue
            logger.info("Fetched %d articles from %s", len(batch), name)
            articles.extend(batch)

        logger.info("Fetching articles from RSS feeds...")
        articles.extend(await self.fetch_rss_feeds(client))
        return articles

    async def fetch_news_api(self, client: httpx.AsyncClient) -> List[Article]:
        if not self.news_api_key:
            logger.warning("No API key for NewsAPI")
            return []

        resp = await client.get(
            NEWS_API_URL,
            params={
                "country": "us",
                "pageSize": 20,
                "category": "general",
                "apiKey": self.news_api_key,
            },
            timeout=10,
        )
        resp.raise_for_status()
        return parse_news_api(resp.json())

    async def fetch_guardian(self, client: httpx.AsyncClient) -> List[Article]:
        if not self.guardian_api_key:
            logger.warning("No API key for Guardian")
            return []

        resp = await client.get(
            GUARDIAN_API_URL,
            params={
                "page-size": 15,
                "show-fields": "bodyText,headline,thumbnail,byline,trailText",
                "api-key": self.guardian_api_key,
            },
            timeout=10,
        )
        resp.raise_for_status()
        return parse_guardian(resp.json())

    async def fetch_rss_feeds(self, client: httpx.AsyncClient) -> List[Article]:
        articles: List[Article] = []

        for feed_url in self.feeds:
            remaining = self.max_total - len(articles)
            if remaining <= 0:
                break

            try:
                resp = await client.get(feed_url)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning("Failed to fetch RSS feed %s: %s", feed_url, exc)
                continue

            items = parse_rss(resp.text, feed_url, min(self.max_per_feed, remaining))
            articles.extend(items)
            logger.info("Fetched %d items from RSS: %s", len(items), feed_url)

            if self.feed_delay:
                await asyncio.sleep(self.feed_delay)

        return articles
