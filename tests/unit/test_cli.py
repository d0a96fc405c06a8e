"""
Unit tests for the nostrwiki command-line interface (``nostrwiki.__main__``).

Tests:
- parse_args() subcommands and shared options
- _load_config() default-file handling
- run_command() output and exit codes
- main() configuration errors, relay overrides, error boundary
- cli() exit codes
"""

import json
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fixtures.nostr import make_wiki_event
from nostrwiki.__main__ import (
    DEFAULT_CONFIG,
    _load_config,
    cli,
    main,
    parse_args,
    run_command,
)
from nostrwiki.core.exceptions import ConnectError, ConnectErrorReason, SigningError
from nostrwiki.models import Event, WikiArticle
from nostrwiki.relay.manager import RelayManager
from nostrwiki.wiki.client import DEFAULT_QUERY_LIMIT, RANDOM_POOL_SIZE


def _article(title: str = "bitcoin", **kwargs) -> WikiArticle:
    return WikiArticle.from_event(Event.from_dict(make_wiki_event(title, **kwargs)))


@pytest.fixture
def manager() -> MagicMock:
    manager = MagicMock(spec=RelayManager)
    manager.list_connected.return_value = ["wss://relay.example.com"]
    manager.start = AsyncMock(return_value={"wss://relay.example.com": MagicMock()})
    manager.shutdown = AsyncMock()
    return manager


@pytest.fixture
def wiki() -> MagicMock:
    wiki = MagicMock()
    wiki.search_articles = AsyncMock(return_value=[])
    wiki.get_recent_changes = AsyncMock(return_value=[])
    wiki.get_article_versions = AsyncMock(return_value=[])
    wiki.get_article = AsyncMock(return_value=None)
    wiki.random_article = AsyncMock(return_value=None)
    with patch("nostrwiki.__main__.WikiClient", return_value=wiki):
        yield wiki


# ============================================================================
# parse_args
# ============================================================================


class TestParseArgs:
    """Argument parsing."""

    def test_search_defaults(self):
        args = parse_args(["search"])
        assert args.command == "search"
        assert args.query == ""
        assert args.limit == DEFAULT_QUERY_LIMIT
        assert args.config is None
        assert args.relay is None
        assert args.log_level == "WARNING"
        assert args.json is False

    def test_search_options(self):
        args = parse_args(["search", "bit", "--limit", "5", "--json", "--log-level", "DEBUG"])
        assert (args.query, args.limit, args.json, args.log_level) == ("bit", 5, True, "DEBUG")

    def test_repeated_relays(self):
        args = parse_args(
            ["recent", "--relay", "wss://a.example.com", "--relay", "wss://b.example.com"]
        )
        assert args.relay == ["wss://a.example.com", "wss://b.example.com"]

    @pytest.mark.parametrize("command", ["get", "versions"])
    def test_title_required(self, command):
        with pytest.raises(SystemExit):
            parse_args([command])
        assert parse_args([command, "bitcoin"]).title == "bitcoin"

    def test_config_path(self):
        assert parse_args(["relays", "--config", "x.yaml"]).config == Path("x.yaml")

    def test_random_pool(self):
        assert parse_args(["random"]).pool == RANDOM_POOL_SIZE
        assert parse_args(["random", "--pool", "10"]).pool == 10

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            parse_args(["search", "--log-level", "TRACE"])


# ============================================================================
# _load_config
# ============================================================================


class TestLoadConfig:
    """Config file loading."""

    def test_absent_default_means_builtins(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert _load_config(None) == {}

    def test_default_file_used_when_present(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / DEFAULT_CONFIG).parent.mkdir()
        (tmp_path / DEFAULT_CONFIG).write_text("subscription_timeout: 2\n")
        assert _load_config(None) == {"subscription_timeout": 2}

    def test_explicit_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            _load_config(tmp_path / "absent.yaml")


# ============================================================================
# run_command
# ============================================================================


class TestRunCommand:
    """Subcommand execution."""

    async def test_relays_report(self, manager, capsys):
        outcome = {
            "wss://relay.example.com": MagicMock(),
            "wss://down.example.com": ConnectError(
                "wss://down.example.com", ConnectErrorReason.TIMEOUT
            ),
        }
        code = await run_command(parse_args(["relays", "--json"]), manager, outcome)
        assert code == 0
        assert json.loads(capsys.readouterr().out) == {
            "wss://relay.example.com": "connected",
            "wss://down.example.com": "timeout",
        }

    async def test_relays_none_connected(self, manager):
        manager.list_connected.return_value = []
        code = await run_command(parse_args(["relays"]), manager, {})
        assert code == 1

    async def test_no_relays_connected(self, manager, wiki):
        manager.list_connected.return_value = []
        code = await run_command(parse_args(["search"]), manager, {"wss://x": MagicMock()})
        assert code == 1
        wiki.search_articles.assert_not_awaited()

    async def test_search_prints_articles(self, manager, wiki, capsys):
        wiki.search_articles.return_value = [_article("bitcoin", display_title="Bitcoin")]
        code = await run_command(parse_args(["search", "bit", "--limit", "7"]), manager, {})
        assert code == 0
        wiki.search_articles.assert_awaited_once_with("bit", 7)
        out = capsys.readouterr().out
        assert "Bitcoin [bitcoin]" in out
        assert "bbbbbbbb...bbbbbbbb" in out

    async def test_search_empty(self, manager, wiki, capsys):
        assert await run_command(parse_args(["search"]), manager, {}) == 0
        assert "No articles found." in capsys.readouterr().out

    async def test_recent_json(self, manager, wiki, capsys):
        wiki.get_recent_changes.return_value = [_article("a"), _article("b")]
        await run_command(parse_args(["recent", "--json"]), manager, {})
        data = json.loads(capsys.readouterr().out)
        assert [item["title"] for item in data] == ["a", "b"]

    async def test_versions(self, manager, wiki, capsys):
        wiki.get_article_versions.return_value = [_article("nostr")]
        assert await run_command(parse_args(["versions", "nostr"]), manager, {}) == 0
        wiki.get_article_versions.assert_awaited_once_with("nostr")

    async def test_get_found(self, manager, wiki, capsys):
        wiki.get_article.return_value = _article(
            "nostr", content="Notes and Other Stuff", summary="A protocol", topics=("social",)
        )
        assert await run_command(parse_args(["get", "nostr"]), manager, {}) == 0
        out = capsys.readouterr().out
        assert "A protocol" in out
        assert "Tags: social" in out
        assert out.rstrip().endswith("Notes and Other Stuff")

    async def test_get_not_found(self, manager, wiki):
        assert await run_command(parse_args(["get", "missing"]), manager, {}) == 1

    async def test_random_found(self, manager, wiki, capsys):
        wiki.random_article.return_value = _article("nostr", content="Notes and Other Stuff")
        assert await run_command(parse_args(["random", "--pool", "5"]), manager, {}) == 0
        wiki.random_article.assert_awaited_once_with(5)
        assert capsys.readouterr().out.rstrip().endswith("Notes and Other Stuff")

    async def test_random_json(self, manager, wiki, capsys):
        wiki.random_article.return_value = _article("nostr")
        assert await run_command(parse_args(["random", "--json"]), manager, {}) == 0
        assert json.loads(capsys.readouterr().out)["title"] == "nostr"

    async def test_random_without_articles(self, manager, wiki):
        assert await run_command(parse_args(["random"]), manager, {}) == 1


# ============================================================================
# main / cli
# ============================================================================


class TestMain:
    """main() wiring."""

    async def test_relay_override(self, manager, wiki, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with patch.object(RelayManager, "from_dict", return_value=manager) as from_dict:
            code = await main(["search", "--relay", "wss://nos.lol"])
        assert code == 0
        from_dict.assert_called_once_with({"relays": ["wss://nos.lol"]})
        manager.shutdown.assert_awaited_once()

    async def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("connect_timeout: -1\n")
        assert await main(["relays", "--config", str(path)]) == 1

    async def test_missing_config(self, tmp_path):
        assert await main(["relays", "--config", str(tmp_path / "absent.yaml")]) == 1

    async def test_domain_error(self, manager, wiki, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        wiki.search_articles.side_effect = SigningError("boom")
        with patch.object(RelayManager, "from_dict", return_value=manager):
            assert await main(["search"]) == 1
        manager.shutdown.assert_awaited_once()

    async def test_unexpected_error(self, manager, wiki, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        wiki.search_articles.side_effect = RuntimeError("bug")
        with patch.object(RelayManager, "from_dict", return_value=manager):
            assert await main(["search"]) == 1
        manager.shutdown.assert_awaited_once()


class TestCli:
    """cli() exit codes."""

    def test_exit_code(self):
        with (
            patch("nostrwiki.__main__.main", new=MagicMock(return_value="coro")),
            patch("nostrwiki.__main__.asyncio.run", return_value=0),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli()
        assert exc_info.value.code == 0

    def test_keyboard_interrupt(self):
        with (
            patch("nostrwiki.__main__.main", new=MagicMock(return_value="coro")),
            patch("nostrwiki.__main__.asyncio.run", side_effect=KeyboardInterrupt),
            pytest.raises(SystemExit) as exc_info,
        ):
            cli()
        assert exc_info.value.code == 130
