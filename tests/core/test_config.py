"""Tests for core configuration classes."""

from __future__ import annotations

import pytest

from productsync.core.config import ConsistencyOptions, ServerConfig
from productsync.core.types import ResolutionStrategy


class TestServerConfig:
    """Tests for ServerConfig class."""

    def test_init_basic(self) -> None:
        """Should initialize with defaults."""
        config = ServerConfig(server_url="https://shop.example.com")
        assert config.server_url == "https://shop.example.com"
        assert config.timeout == 30.0
        assert config.verify_ssl is True

    def test_url_trailing_slash_removed(self) -> None:
        """Should strip trailing slash from server URL."""
        config = ServerConfig(server_url="https://shop.example.com/")
        assert config.server_url == "https://shop.example.com"


class TestConsistencyOptions:
    """Tests for ConsistencyOptions class."""

    def test_defaults(self) -> None:
        """Defaults: no auto-refresh, 30s interval, server wins, 3 retries, 1s delay."""
        options = ConsistencyOptions()
        assert options.enable_auto_refresh is False
        assert options.refresh_interval == 30.0
        assert options.strategy is ResolutionStrategy.SERVER_WINS
        assert options.max_retries == 3
        assert options.retry_delay == 1.0

    def test_strategy_from_string(self) -> None:
        """Should accept the strategy's string value."""
        options = ConsistencyOptions(strategy="client-wins")  # type: ignore[arg-type]
        assert options.strategy is ResolutionStrategy.CLIENT_WINS

    def test_unknown_strategy_rejected(self) -> None:
        """Should reject unknown strategies."""
        with pytest.raises(ValueError):
            ConsistencyOptions(strategy="coin-flip")  # type: ignore[arg-type]

    def test_non_positive_interval_rejected(self) -> None:
        """Should reject a zero refresh interval."""
        with pytest.raises(ValueError, match="refresh_interval"):
            ConsistencyOptions(refresh_interval=0)

    def test_negative_retries_rejected(self) -> None:
        """Should reject negative retry counts."""
        with pytest.raises(ValueError, match="max_retries"):
            ConsistencyOptions(max_retries=-1)
