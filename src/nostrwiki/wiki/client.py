"""NIP-54 wiki queries on top of the relay engine.

Every query is one subscription collected until completion through
[RelayManager.fetch_events()][nostrwiki.relay.manager.RelayManager.fetch_events],
so it is bounded by the manager's subscription timeout (or the ``timeout``
given to the client).

A manager hands each event to its subscriptions once, so the client keeps
every article it has received and answers each query from that cache after
merging in what the relays just sent.
"""

from __future__ import annotations

import datetime
import random
from collections.abc import Iterable

from nostrwiki.core.logger import Logger
from nostrwiki.models.constants import EventKind
from nostrwiki.models.event import UnsignedEvent
from nostrwiki.models.filter import Filter
from nostrwiki.models.wiki import WikiArticle
from nostrwiki.relay.dispatcher import PublishResult
from nostrwiki.relay.manager import RelayManager


DEFAULT_QUERY_LIMIT = 20
RANDOM_POOL_SIZE = 100
WIKI_KIND = int(EventKind.WIKI_ARTICLE)


def format_pubkey(pubkey: str | None) -> str:
    """Shorten a hex public key to ``first8...last8`` for display."""
    if not pubkey:
        return "Unknown"
    return f"{pubkey[:8]}...{pubkey[-8:]}"


def format_timestamp(timestamp: int) -> str:
    """Render a unix timestamp as local ``YYYY-MM-DD HH:MM:SS``."""
    return datetime.datetime.fromtimestamp(timestamp).strftime("%Y-%m-%d %H:%M:%S")


def _newest_first(articles: Iterable[WikiArticle]) -> list[WikiArticle]:
    return sorted(articles, key=lambda a: (a.timestamp, a.id), reverse=True)


class WikiClient:
    """Reads and publishes kind-30818 wiki articles.

    Use one client per manager: articles another client on the same manager
    already received are not delivered to this one.

    Args:
        manager: A started [RelayManager][nostrwiki.relay.manager.RelayManager].
        timeout: Per-query bound in seconds; the manager's subscription
            timeout when omitted.
    """

    def __init__(
        self,
        manager: RelayManager,
        *,
        timeout: float | None = None,  # noqa: ASYNC109
        logger: Logger | None = None,
    ) -> None:
        self._manager = manager
        self._timeout = timeout
        self._logger = logger or Logger("nostrwiki.wiki")
        self._articles: dict[str, WikiArticle] = {}

    async def _query(self, wiki_filter: Filter) -> list[WikiArticle]:
        """Fetch *wiki_filter* and return every cached article, newest first."""
        events = await self._manager.fetch_events([wiki_filter], timeout=self._timeout)
        for event in events:
            self._articles[event.id] = WikiArticle.from_event(event)
        return _newest_first(self._articles.values())

    async def search_articles(
        self, query: str = "", limit: int = DEFAULT_QUERY_LIMIT
    ) -> list[WikiArticle]:
        """Articles whose title contains *query* (case-insensitive), newest first.

        Only the *limit* most recent articles are searched; an empty query
        returns all of them.
        """
        articles = (await self._query(Filter(kinds={WIKI_KIND}, limit=limit)))[:limit]
        needle = query.strip().lower()
        if needle:
            articles = [a for a in articles if needle in a.title.lower()]
        self._logger.debug("wiki_search", query=query, results=len(articles))
        return articles

    async def get_article(self, title: str) -> WikiArticle | None:
        """Newest version of the article with ``d`` tag *title*, if any."""
        versions = await self.get_article_versions(title)
        return versions[0] if versions else None

    async def get_article_versions(self, title: str) -> list[WikiArticle]:
        """Every version of *title* (one per event, any author), newest first."""
        articles = await self._query(Filter(kinds={WIKI_KIND}, tag_filters={"d": {title}}))
        articles = [a for a in articles if a.title == title]
        self._logger.debug("wiki_versions", title=title, results=len(articles))
        return articles

    async def get_recent_changes(self, limit: int = DEFAULT_QUERY_LIMIT) -> list[WikiArticle]:
        """The *limit* most recently edited articles, newest first."""
        articles = await self._query(Filter(kinds={WIKI_KIND}, limit=limit))
        return articles[:limit]

    async def random_article(self, pool: int = RANDOM_POOL_SIZE) -> WikiArticle | None:
        """One article picked uniformly from the *pool* most recent, if any."""
        articles = await self.search_articles("", pool)
        if not articles:
            return None
        article = random.choice(articles)
        self._logger.debug("wiki_random", title=article.title, pool=len(articles))
        return article

    async def publish_article(
        self,
        title: str,
        content: str,
        *,
        display_title: str | None = None,
        summary: str | None = None,
        topic_tags: Iterable[str] = (),
    ) -> PublishResult:
        """Sign and publish a new version of an article.

        Raises:
            ValueError: If *title* is blank.
            SigningError: If no private key is configured or signing fails.
        """
        if not title.strip():
            raise ValueError("article title must not be blank")
        tags: list[tuple[str, ...]] = [("d", title)]
        if display_title:
            tags.append(("title", display_title))
        if summary:
            tags.append(("summary", summary))
        tags.extend(("t", topic) for topic in topic_tags)

        result = await self._manager.publish(
            UnsignedEvent(kind=WIKI_KIND, content=content, tags=tags)
        )
        self._logger.info(
            "wiki_article_published",
            title=title,
            event_id=result.event.id,
            relays=len(result.relays),
        )
        return result
