"""
Centralized HTTP client configuration.

Provides session management for the synchronous (requests) media downloads:
- A fixed client identity User-Agent
- Connect / read timeouts
- Optional proxy
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

import requests

logger = logging.getLogger(__name__)


CLIENT_USER_AGENT = "MicroMessenger Client"

# Headers for media/file downloads
MEDIA_HEADERS = {
    "User-Agent": CLIENT_USER_AGENT,
    "Accept": "*/*",
    "Accept-Encoding": "identity;q=1, *;q=0",
}


class ProxyConfig:
    """Configuration for proxy support."""

    def __init__(self, proxy_url: Optional[str] = None):
        self.proxy_url = proxy_url or None

    @property
    def enabled(self) -> bool:
        return self.proxy_url is not None

    def get_requests_proxies(self) -> Optional[Dict[str, str]]:
        """Get proxy dict for requests library."""
        if not self.proxy_url:
            return None
        return {"http": self.proxy_url, "https": self.proxy_url}


class HttpClientConfig:
    """Central HTTP client configuration."""

    def __init__(
        self,
        proxy_config: Optional[ProxyConfig] = None,
        connect_timeout: int = 10,
        read_timeout: int = 60,
        user_agent: str = CLIENT_USER_AGENT,
    ):
        self.proxy_config = proxy_config or ProxyConfig()
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.user_agent = user_agent or CLIENT_USER_AGENT

    @property
    def timeout(self) -> Tuple[int, int]:
        """(connect, read) tuple as accepted by requests."""
        return (self.connect_timeout, self.read_timeout)

    def headers(self) -> Dict[str, str]:
        headers = MEDIA_HEADERS.copy()
        headers["User-Agent"] = self.user_agent
        return headers


class HttpClient:
    """
    Centralized HTTP client factory.

    Creates a configured requests.Session shared by the media fetcher.
    """

    def __init__(self, config: Optional[HttpClientConfig] = None):
        self.config = config or HttpClientConfig()
        self._sync_session: Optional[requests.Session] = None

    def create_sync_session(self, headers: Optional[Dict[str, str]] = None) -> requests.Session:
        """
        Create a configured requests.Session for synchronous HTTP.

        Args:
            headers: Optional headers to use (defaults to the media headers)

        Returns:
            Configured requests.Session
        """
        session = requests.Session()
        session.headers.update(headers or self.config.headers())

        proxies = self.config.proxy_config.get_requests_proxies()
        if proxies:
            session.proxies.update(proxies)
            logger.info(f"Sync session using proxy: {proxies.get('https', proxies.get('http'))}")

        self._sync_session = session
        return session

    def get_sync_session(self) -> requests.Session:
        """Get existing session or create new one."""
        if self._sync_session is None:
            return self.create_sync_session()
        return self._sync_session

    def close(self):
        if self._sync_session:
            self._sync_session.close()
            self._sync_session = None


def create_http_client_from_settings(settings) -> HttpClient:
    """
    Create HttpClient configured from stored settings.

    Args:
        settings: SettingsStore instance to read settings from

    Returns:
        Configured HttpClient instance
    """
    proxy_url = settings.get_config("proxy_url", "")
    config = HttpClientConfig(
        proxy_config=ProxyConfig(proxy_url if proxy_url else None),
        connect_timeout=settings.get_int("http_connect_timeout", 10),
        read_timeout=settings.get_int("http_read_timeout", 60),
        user_agent=settings.get_config("user_agent", CLIENT_USER_AGENT),
    )
    return HttpClient(config)
