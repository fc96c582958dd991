"""Shared configuration classes for productsync.

This module defines configuration classes used by the client components.
"""

from __future__ import annotations

from dataclasses import dataclass

from productsync.core.types import ResolutionStrategy


@dataclass
class ServerConfig:
    """Configuration for connecting to a productsync server.

    Attributes:
        server_url: Base URL of the server (e.g., "https://shop.example.com").
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
    """

    server_url: str
    timeout: float = 30.0
    verify_ssl: bool = True

    def __post_init__(self) -> None:
        """Normalize server URL."""
        self.server_url = self.server_url.rstrip("/")


@dataclass
class ConsistencyOptions:
    """Behaviour of the client-side data consistency service.

    Attributes:
        enable_auto_refresh: Start the background refresh poller on initialize().
        refresh_interval: Seconds between background refreshes.
        strategy: Conflict resolution strategy.
        max_retries: Retries for optimistic updates.
        retry_delay: Seconds to wait between optimistic update retries.
    """

    enable_auto_refresh: bool = False
    refresh_interval: float = 30.0
    strategy: ResolutionStrategy = ResolutionStrategy.SERVER_WINS
    max_retries: int = 3
    retry_delay: float = 1.0

    def __post_init__(self) -> None:
        """Accept strategy given as its string value."""
        self.strategy = ResolutionStrategy(self.strategy)
        if self.refresh_interval <= 0:
            raise ValueError("refresh_interval must be positive")
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
