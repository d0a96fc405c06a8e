"""
Unit tests for wiki.client module.

Tests:
- format_pubkey() / format_timestamp()
- search_articles(): title matching, ordering, query filter
- get_article() / get_article_versions()
- Article cache: repeated queries on one manager
- random_article()
- get_recent_changes()
- publish_article(): tag construction and validation
- WikiClient against a live in-process relay
"""

import datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fixtures.nostr import StubSigner, make_wiki_event
from nostrwiki.core.exceptions import SigningError
from nostrwiki.models import Event, Filter
from nostrwiki.relay.config import ClientConfig
from nostrwiki.relay.dispatcher import PublishResult
from nostrwiki.relay.manager import RelayManager
from nostrwiki.wiki.client import (
    DEFAULT_QUERY_LIMIT,
    RANDOM_POOL_SIZE,
    WIKI_KIND,
    WikiClient,
    format_pubkey,
    format_timestamp,
)


def _events(*raws: dict) -> list[Event]:
    return [Event.from_dict(raw) for raw in raws]


@pytest.fixture
def manager() -> MagicMock:
    manager = MagicMock(spec=RelayManager)
    manager.fetch_events = AsyncMock(return_value=[])
    manager.publish = AsyncMock()
    return manager


@pytest.fixture
def client(manager) -> WikiClient:
    return WikiClient(manager, timeout=1.5)


# ============================================================================
# Formatting
# ============================================================================


class TestFormatting:
    """Display helpers."""

    def test_format_pubkey(self):
        pubkey = "0123456789abcdef" + "0" * 32 + "fedcba9876543210"
        assert format_pubkey(pubkey) == "01234567...76543210"

    @pytest.mark.parametrize("pubkey", [None, ""])
    def test_format_pubkey_missing(self, pubkey):
        assert format_pubkey(pubkey) == "Unknown"

    def test_format_timestamp(self):
        ts = 1700000000
        expected = datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")
        assert format_timestamp(ts) == expected
        assert len(format_timestamp(ts)) == 19


# ============================================================================
# Queries
# ============================================================================


class TestSearchArticles:
    """search_articles()."""

    async def test_filter_sent(self, client, manager):
        await client.search_articles("bit", limit=50)
        manager.fetch_events.assert_awaited_once_with(
            [Filter(kinds={WIKI_KIND}, limit=50)], timeout=1.5
        )

    async def test_case_insensitive_newest_first(self, client, manager):
        manager.fetch_events.return_value = _events(
            make_wiki_event("bitcoin", created_at=100),
            make_wiki_event("nostr", created_at=300),
            make_wiki_event("Bitcoin-history", created_at=200),
        )
        articles = await client.search_articles("BITCOIN")
        assert [a.title for a in articles] == ["Bitcoin-history", "bitcoin"]

    async def test_empty_query_returns_all(self, client, manager):
        manager.fetch_events.return_value = _events(
            make_wiki_event("a", created_at=1), make_wiki_event("b", created_at=2)
        )
        articles = await client.search_articles()
        assert [a.title for a in articles] == ["b", "a"]

    async def test_default_limit(self, client, manager):
        await client.search_articles("x")
        sent = manager.fetch_events.await_args.args[0][0]
        assert sent.limit == DEFAULT_QUERY_LIMIT


class TestGetArticle:
    """get_article() / get_article_versions()."""

    async def test_versions_query_d_tag(self, client, manager):
        await client.get_article_versions("bitcoin")
        manager.fetch_events.assert_awaited_once_with(
            [Filter(kinds={WIKI_KIND}, tag_filters={"d": {"bitcoin"}})], timeout=1.5
        )

    async def test_versions_newest_first(self, client, manager):
        manager.fetch_events.return_value = _events(
            make_wiki_event("bitcoin", "v1", created_at=100, pubkey="c" * 64),
            make_wiki_event("bitcoin", "v3", created_at=300),
            make_wiki_event("bitcoin", "v2", created_at=200),
        )
        versions = await client.get_article_versions("bitcoin")
        assert [v.content for v in versions] == ["v3", "v2", "v1"]

    async def test_get_article_newest(self, client, manager):
        manager.fetch_events.return_value = _events(
            make_wiki_event("bitcoin", "old", created_at=100),
            make_wiki_event("bitcoin", "new", created_at=200),
        )
        article = await client.get_article("bitcoin")
        assert article is not None
        assert article.content == "new"

    async def test_get_article_absent(self, client):
        assert await client.get_article("missing") is None


class TestArticleCache:
    """Articles already received keep answering later queries."""

    async def test_repeat_search_served_from_cache(self, client, manager):
        manager.fetch_events.side_effect = [
            _events(make_wiki_event("bitcoin", created_at=100)),
            [],
        ]
        first = await client.search_articles("bit")
        second = await client.search_articles("bit")
        assert [a.title for a in first] == [a.title for a in second] == ["bitcoin"]
        assert manager.fetch_events.await_count == 2

    async def test_versions_after_search(self, client, manager):
        manager.fetch_events.side_effect = [
            _events(
                make_wiki_event("bitcoin", "v1", created_at=100),
                make_wiki_event("nostr", created_at=150),
            ),
            _events(make_wiki_event("bitcoin", "v2", created_at=200)),
        ]
        await client.search_articles()
        versions = await client.get_article_versions("bitcoin")
        assert [v.content for v in versions] == ["v2", "v1"]

    async def test_search_limit_applies_to_cache(self, client, manager):
        manager.fetch_events.side_effect = [
            _events(*(make_wiki_event(f"page-{i}", created_at=i) for i in range(4))),
            [],
        ]
        await client.search_articles(limit=4)
        articles = await client.search_articles(limit=2)
        assert [a.title for a in articles] == ["page-3", "page-2"]


class TestRandomArticle:
    """random_article()."""

    async def test_pool_query(self, client, manager):
        await client.random_article()
        manager.fetch_events.assert_awaited_once_with(
            [Filter(kinds={WIKI_KIND}, limit=RANDOM_POOL_SIZE)], timeout=1.5
        )

    async def test_picks_from_pool(self, client, manager):
        manager.fetch_events.return_value = _events(
            make_wiki_event("bitcoin", created_at=100), make_wiki_event("nostr", created_at=200)
        )
        with patch("nostrwiki.wiki.client.random.choice", side_effect=lambda seq: seq[-1]):
            article = await client.random_article()
        assert article is not None
        assert article.title == "bitcoin"

    async def test_none_without_articles(self, client):
        assert await client.random_article() is None


class TestRecentChanges:
    """get_recent_changes()."""

    async def test_truncated_to_limit(self, client, manager):
        manager.fetch_events.return_value = _events(
            *(make_wiki_event(f"page-{i}", created_at=i) for i in range(5))
        )
        articles = await client.get_recent_changes(limit=3)
        assert [a.title for a in articles] == ["page-4", "page-3", "page-2"]
        assert manager.fetch_events.await_args.args[0] == [Filter(kinds={WIKI_KIND}, limit=3)]


# ============================================================================
# Publishing
# ============================================================================


class TestPublishArticle:
    """publish_article()."""

    async def test_tags(self, client, manager):
        await client.publish_article(
            "bitcoin",
            "body",
            display_title="Bitcoin",
            summary="Digital cash",
            topic_tags=["money", "p2p"],
        )
        unsigned = manager.publish.await_args.args[0]
        assert unsigned.kind == WIKI_KIND
        assert unsigned.content == "body"
        assert unsigned.tags == (
            ("d", "bitcoin"),
            ("title", "Bitcoin"),
            ("summary", "Digital cash"),
            ("t", "money"),
            ("t", "p2p"),
        )

    async def test_minimal_tags(self, client, manager):
        await client.publish_article("nostr", "body")
        assert manager.publish.await_args.args[0].tags == (("d", "nostr"),)

    @pytest.mark.parametrize("title", ["", "   "])
    async def test_blank_title(self, client, manager, title):
        with pytest.raises(ValueError, match="blank"):
            await client.publish_article(title, "body")
        manager.publish.assert_not_awaited()

    async def test_signing_error_propagates(self, client, manager):
        manager.publish.side_effect = SigningError("no key")
        with pytest.raises(SigningError):
            await client.publish_article("bitcoin", "body")


# ============================================================================
# Live relay
# ============================================================================


class TestAgainstRelay:
    """WikiClient over a real RelayManager."""

    async def test_publish_then_read(self, relay_factory):
        relay = await relay_factory([make_wiki_event("nostr", created_at=1700000000)])
        config = ClientConfig(relays=[relay.url], subscription_timeout=2.0)
        async with RelayManager(config, signer=StubSigner()) as manager:
            wiki = WikiClient(manager)
            result = await wiki.publish_article("bitcoin", "Peer-to-peer cash")
            assert isinstance(result, PublishResult)
            assert result.relays == (relay.url,)

        async with RelayManager(config, signer=StubSigner()) as manager:
            wiki = WikiClient(manager)
            titles = [a.title for a in await wiki.search_articles()]
            article = await wiki.get_article("bitcoin")

        assert sorted(titles) == ["bitcoin", "nostr"]
        assert article is not None
        assert article.content == "Peer-to-peer cash"

    async def test_repeated_reads_on_one_manager(self, relay_factory):
        relay = await relay_factory(
            [
                make_wiki_event("bitcoin", "Peer-to-peer cash", created_at=1700000000),
                make_wiki_event("nostr", created_at=1700000100),
            ]
        )
        config = ClientConfig(relays=[relay.url], subscription_timeout=2.0)
        async with RelayManager(config, signer=StubSigner()) as manager:
            wiki = WikiClient(manager)
            titles = [a.title for a in await wiki.search_articles()]
            article = await wiki.get_article("bitcoin")
            picked = await wiki.random_article()

        assert titles == ["nostr", "bitcoin"]
        assert article is not None
        assert article.content == "Peer-to-peer cash"
        assert picked is not None
        assert picked.title in titles
