"""
Proxy Pool
Keeps an in-memory set of egress proxies and hands out the best performer.

The pool is ephemeral: losing it on restart only costs the usage statistics.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Union
from urllib.parse import urlsplit

import aiohttp
from pydantic import BaseModel, Field

from autovagas.core.config import AppConfig, get_config

logger = logging.getLogger(__name__)


@dataclass
class Proxy:
    """Proxy configuration plus usage statistics."""
    host: str
    port: int
    username: Optional[str] = None
    password: Optional[str] = None
    protocol: str = "http"
    country: Optional[str] = None
    last_used: Optional[datetime] = None
    success_count: int = 0
    failure_count: int = 0

    @property
    def key(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def success_rate(self) -> float:
        total = self.success_count + self.failure_count
        if total == 0:
            return 1.0
        return self.success_count / total

    def to_url(self) -> str:
        """Convert to proxy URL format."""
        if self.username and self.password:
            return f"{self.protocol}://{self.username}:{self.password}@{self.host}:{self.port}"
        return f"{self.protocol}://{self.host}:{self.port}"

    @classmethod
    def from_url(cls, url: str, country: Optional[str] = None) -> "Proxy":
        parts = urlsplit(url)
        if not parts.hostname or not parts.port:
            raise ValueError(f"Proxy URL must include host and port: {url!r}")
        return cls(
            host=parts.hostname,
            port=parts.port,
            username=parts.username,
            password=parts.password,
            protocol=parts.scheme or "http",
            country=country.lower() if country else None,
        )


class ProviderProxy(BaseModel):
    ip: str
    port: int = Field(..., gt=0, lt=65536)
    username: Optional[str] = None
    password: Optional[str] = None
    protocol: str = "http"
    country: Optional[str] = None


class ProviderResponse(BaseModel):
    proxies: List[ProviderProxy] = Field(default_factory=list)


def proxy_key(proxy: Union[Proxy, str]) -> str:
    if isinstance(proxy, Proxy):
        return proxy.key
    parts = urlsplit(proxy)
    return f"{parts.hostname}:{parts.port}"


class ProxyPool:
    """
    Rotates proxies by success rate, then least-recently-used.

    Proxies come from PROXY_STATIC_LIST plus an optional provider API that is
    polled at most once per PROXY_REFRESH_INTERVAL_SECONDS.
    """

    def __init__(self, app_config: Optional[AppConfig] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.config = app_config or get_config()
        self._now = clock
        self._proxies: Dict[str, Proxy] = {}
        self._last_refresh: Optional[datetime] = None
        self._refresh_lock = asyncio.Lock()
        self._load_static()

    def _load_static(self):
        for entry in self.config.PROXY_STATIC_LIST:
            url, _, country = entry.partition("|")
            try:
                proxy = Proxy.from_url(url.strip(), country.strip() or None)
            except ValueError as e:
                logger.warning(f"Ignoring static proxy entry: {e}")
                continue
            self._proxies[proxy.key] = proxy

    @property
    def proxies(self) -> List[Proxy]:
        return list(self._proxies.values())

    def __len__(self) -> int:
        return len(self._proxies)

    def add(self, proxy: Proxy):
        existing = self._proxies.get(proxy.key)
        if existing:
            proxy.last_used = existing.last_used
            proxy.success_count = existing.success_count
            proxy.failure_count = existing.failure_count
        self._proxies[proxy.key] = proxy

    def _needs_refresh(self) -> bool:
        if not self.config.PROXY_API_URL:
            return False
        if self._last_refresh is None:
            return True
        interval = timedelta(seconds=self.config.PROXY_REFRESH_INTERVAL_SECONDS)
        return self._now() - self._last_refresh >= interval

    async def refresh(self, force: bool = False) -> int:
        """
        Pull the provider's proxy list and merge it into the pool.

        Statistics survive for proxies that are still listed (matched by
        host:port). Provider errors are logged and the previous set is kept.

        Returns:
            Number of proxies in the pool afterwards
        """
        async with self._refresh_lock:
            if not force and not self._needs_refresh():
                return len(self._proxies)
            self._last_refresh = self._now()
            try:
                payload = await self._fetch_provider()
                fetched = ProviderResponse.model_validate(payload)
            except Exception as e:
                logger.error(f"Proxy provider refresh failed: {e}")
                return len(self._proxies)

            for item in fetched.proxies:
                self.add(Proxy(
                    host=item.ip,
                    port=item.port,
                    username=item.username,
                    password=item.password,
                    protocol=item.protocol,
                    country=item.country.lower() if item.country else None,
                ))
            logger.info(f"Proxy pool refreshed: {len(fetched.proxies)} from provider, {len(self._proxies)} total")
            return len(self._proxies)

    async def _fetch_provider(self) -> dict:
        timeout = aiohttp.ClientTimeout(total=self.config.REQUEST_TIMEOUT_SECONDS)
        headers = {"Authorization": f"Bearer {self.config.PROXY_API_KEY}"}
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(self.config.PROXY_API_URL, headers=headers) as resp:
                resp.raise_for_status()
                return await resp.json()

    def _rank_key(self, proxy: Proxy):
        # Highest success rate first; least recently used breaks ties.
        return (-proxy.success_rate, proxy.last_used or datetime.min)

    async def acquire(self, country: Optional[str] = None) -> Optional[Proxy]:
        """
        Get the best available proxy.

        Args:
            country: Preferred country code; falls back to any proxy when
                none match

        Returns:
            The chosen proxy (marked as used now), or None when the pool is empty
        """
        await self.refresh()
        if not self._proxies:
            return None

        candidates = self.proxies
        if country:
            matching = [p for p in candidates if p.country == country.lower()]
            if matching:
                candidates = matching

        proxy = min(candidates, key=self._rank_key)
        proxy.last_used = self._now()
        return proxy

    def report_success(self, proxy: Union[Proxy, str]):
        tracked = self._proxies.get(proxy_key(proxy))
        if tracked:
            tracked.success_count += 1

    def report_failure(self, proxy: Union[Proxy, str]):
        tracked = self._proxies.get(proxy_key(proxy))
        if tracked:
            tracked.failure_count += 1
            logger.debug(f"Proxy failure recorded: {tracked.key} ({tracked.failure_count} total)")

    def get_stats(self) -> Dict:
        """Get proxy usage statistics."""
        total_success = sum(p.success_count for p in self._proxies.values())
        total_failures = sum(p.failure_count for p in self._proxies.values())
        total = total_success + total_failures
        return {
            "total_proxies": len(self._proxies),
            "total_success": total_success,
            "total_failures": total_failures,
            "success_rate": total_success / total if total else 0,
            "last_refresh": self._last_refresh.isoformat() if self._last_refresh else None,
        }
