"""Tests for lazy import system in nostrwiki.__init__."""

from __future__ import annotations

import subprocess
import sys

import pytest


class TestLazyImports:
    """Test PEP 562 lazy loading in nostrwiki.__init__."""

    def test_lazy_import_does_not_eagerly_load(self) -> None:
        """Importing nostrwiki in a fresh interpreter loads no subpackage."""
        code = (
            "import sys, nostrwiki\n"
            "loaded = [m for m in ('nostrwiki.core', 'nostrwiki.models', "
            "'nostrwiki.relay', 'nostrwiki.wiki') if m in sys.modules]\n"
            "print(','.join(loaded))\n"
        )
        result = subprocess.run(
            [sys.executable, "-c", code], capture_output=True, text=True, check=True
        )
        assert result.stdout.strip() == ""

    def test_lazy_import_resolves_on_access(self) -> None:
        """Verify that lazy attributes resolve correctly."""
        from nostrwiki import RelayManager, WikiArticle
        from nostrwiki.models.wiki import WikiArticle as DirectWikiArticle
        from nostrwiki.relay.manager import RelayManager as DirectRelayManager

        assert RelayManager is DirectRelayManager
        assert WikiArticle is DirectWikiArticle

    def test_lazy_import_caches_after_first_access(self) -> None:
        """Verify that resolved attributes are cached in globals."""
        import nostrwiki

        _ = nostrwiki.Filter
        assert "Filter" in vars(nostrwiki)

    def test_lazy_import_invalid_attribute(self) -> None:
        """Verify that invalid attributes raise AttributeError."""
        import nostrwiki

        with pytest.raises(AttributeError, match="no_such_thing"):
            _ = getattr(nostrwiki, "no_such_thing")  # noqa: B009

    def test_all_exports_are_in_lazy_imports(self) -> None:
        """Verify that __all__ and _LAZY_IMPORTS are in sync."""
        import nostrwiki

        assert set(nostrwiki.__all__) == set(nostrwiki._LAZY_IMPORTS)

    def test_dir_returns_all(self) -> None:
        import nostrwiki

        assert dir(nostrwiki) == nostrwiki.__all__

    def test_version_is_accessible(self) -> None:
        """Verify that __version__ is set from package metadata."""
        import nostrwiki

        assert isinstance(nostrwiki.__version__, str)
        assert nostrwiki.__version__
