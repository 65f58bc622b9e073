"""Client factory -- builds the five service clients and manages them together.

The factory is an ordinary object: construct one per application (or per
test). ``ApiClientFactory.get_instance()`` offers an opt-in shared instance
for code that wants one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, ClassVar

import httpx

from sangha_api.auth import TokenStore
from sangha_api.client.admin import AdminServiceClient
from sangha_api.client.analytics import AnalyticsServiceClient
from sangha_api.client.base import BaseApiClient
from sangha_api.client.community import CommunityServiceClient
from sangha_api.client.content import ContentServiceClient
from sangha_api.client.search import SearchServiceClient
from sangha_api.config import SERVICE_NAMES, ApiClientsConfig, ErrorHook, RequestHook, ResponseHook
from sangha_api.models import ClientState, ClientStats, ClientStatus, HealthSummary, SystemHealth

logger = logging.getLogger("sangha_api.factory")

# All service client classes keyed by service name
SERVICE_CLIENTS: dict[str, type[BaseApiClient]] = {
    "content": ContentServiceClient,
    "community": CommunityServiceClient,
    "analytics": AnalyticsServiceClient,
    "admin": AdminServiceClient,
    "search": SearchServiceClient,
}

# Per-service cache/rate-limit settings passed to ApiClientsConfig.service_config()
SERVICE_OVERRIDES: dict[str, dict[str, Any]] = {
    "content": {"cache_ttl": 300.0, "cache_max_size": 100},
    "community": {"cache_ttl": 300.0, "cache_max_size": 100},
    "analytics": {"cache_ttl": 300.0, "cache_max_size": 100, "rate_limit_max_requests": 200},
    "admin": {"cache_ttl": 60.0, "cache_max_size": 50},
    "search": {"cache_ttl": 180.0, "cache_max_size": 200},
}


def health_status(services: list[ClientStatus]) -> str:
    """All healthy -> healthy; at least half healthy -> degraded; else unhealthy."""
    healthy = sum(1 for s in services if s.healthy)
    if services and healthy == len(services):
        return "healthy"
    if services and healthy * 2 >= len(services):
        return "degraded"
    return "unhealthy"


class ApiClientFactory:
    """Owns one client per service, all sharing a config and a token store."""

    _instance: ClassVar[ApiClientFactory | None] = None

    def __init__(
        self,
        config: ApiClientsConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or ApiClientsConfig()
        self.tokens = TokenStore()
        self._transport = transport
        self._clients: dict[str, BaseApiClient] = {}
        self._health_task: asyncio.Task | None = None
        self._health_interval = self.config.health_check_interval
        self.last_health: SystemHealth | None = None
        self._build_clients()

    def _build_clients(self) -> None:
        self._clients = {}
        for name in SERVICE_NAMES:
            cls = SERVICE_CLIENTS[name]
            service_config = self.config.service_config(**SERVICE_OVERRIDES.get(name, {}))
            self._clients[name] = cls(service_config, tokens=self.tokens, transport=self._transport)
        logger.info(
            "Initialized %d API clients against %s (%s)",
            len(self._clients),
            self.config.base_url,
            self.config.environment,
        )

    # ── Client access ─────────────────────────────────────────────────

    def get_client(self, name: str) -> BaseApiClient:
        """Return the client registered under ``name``.

        Raises:
            KeyError: If ``name`` is not a known service.
        """
        client = self._clients.get(name)
        if client is None:
            raise KeyError(
                f"Unknown service: {name}. "
                f"Available: {', '.join(sorted(self._clients))}"
            )
        return client

    @property
    def clients(self) -> dict[str, BaseApiClient]:
        return dict(self._clients)

    @property
    def content(self) -> ContentServiceClient:
        return self._clients["content"]

    @property
    def community(self) -> CommunityServiceClient:
        return self._clients["community"]

    @property
    def analytics(self) -> AnalyticsServiceClient:
        return self._clients["analytics"]

    @property
    def admin(self) -> AdminServiceClient:
        return self._clients["admin"]

    @property
    def search(self) -> SearchServiceClient:
        return self._clients["search"]

    # ── Auth ──────────────────────────────────────────────────────────

    def set_auth_token(self, token: str) -> None:
        """Set the bearer token for every client. Requests already sent keep their header."""
        self.tokens.set(token)
        logger.info("Auth token set for %d clients", len(self._clients))

    def clear_auth_token(self) -> None:
        self.tokens.clear()
        logger.info("Auth token cleared for %d clients", len(self._clients))

    def is_authenticated(self) -> bool:
        return self.tokens.is_set

    def get_auth_status(self) -> dict[str, Any]:
        return {
            "authenticated": self.is_authenticated(),
            "services": {name: client.is_authenticated() for name, client in self._clients.items()},
        }

    # ── Health ────────────────────────────────────────────────────────

    async def _probe(self, name: str, client: BaseApiClient, timeout: float) -> ClientStatus:
        try:
            return await asyncio.wait_for(client.health_check(timeout), timeout)
        except asyncio.TimeoutError:
            client.state = ClientState.DEGRADED
            status = ClientStatus(
                name=name,
                healthy=False,
                latency_ms=int(timeout * 1000),
                error=f"Health check timed out after {timeout:.1f}s",
                state=ClientState.DEGRADED,
            )
            client.last_status = status
            logger.warning("Health check for %s timed out after %.1fs", name, timeout)
            return status

    async def get_system_health(self, timeout: float | None = None) -> list[ClientStatus]:
        """Probe every service concurrently.

        Each probe is bounded by ``timeout`` (default: the configured probe
        timeout), so one hanging service cannot hold up the others.
        """
        limit = timeout if timeout is not None else self.config.probe_timeout
        results = await asyncio.gather(
            *(self._probe(name, client, limit) for name, client in self._clients.items())
        )
        unhealthy = [s.name for s in results if not s.healthy]
        if unhealthy:
            logger.warning("Unhealthy services: %s", ", ".join(unhealthy))
        return list(results)

    async def get_health_summary(self, timeout: float | None = None) -> SystemHealth:
        services = await self.get_system_health(timeout)
        latencies = [s.latency_ms for s in services if s.latency_ms is not None]
        healthy = sum(1 for s in services if s.healthy)
        return SystemHealth(
            status=health_status(services),
            services=services,
            summary=HealthSummary(
                total=len(services),
                healthy=healthy,
                unhealthy=len(services) - healthy,
                average_latency_ms=round(sum(latencies) / len(latencies)) if latencies else 0,
            ),
        )

    # ── Health monitoring ─────────────────────────────────────────────

    @property
    def is_health_checking(self) -> bool:
        return self._health_task is not None and not self._health_task.done()

    def start_health_checking(self, interval: float | None = None) -> None:
        """Probe every service every ``interval`` seconds in a background task.

        Must be called from a running event loop. The latest summary is kept
        in ``last_health``. Does nothing when monitoring already runs.
        """
        if self.is_health_checking:
            return
        period = interval if interval is not None else self.config.health_check_interval
        if period <= 0:
            raise ValueError("Health check interval must be positive")
        self._health_interval = period
        self._health_task = asyncio.create_task(self._health_loop(period))
        logger.info("Health monitoring started (every %.1fs)", period)

    async def stop_health_checking(self) -> None:
        task, self._health_task = self._health_task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await asyncio.wait_for(asyncio.shield(task), timeout=5.0)
        except (asyncio.CancelledError, asyncio.TimeoutError):
            pass
        logger.info("Health monitoring stopped")

    async def _health_loop(self, interval: float) -> None:
        while True:
            try:
                self.last_health = await self.get_health_summary()
            except Exception as exc:
                logger.error("Health monitoring round failed: %s", exc, exc_info=True)
            else:
                if self.last_health.status != "healthy":
                    logger.warning(
                        "System health %s (%d/%d healthy)",
                        self.last_health.status,
                        self.last_health.summary.healthy,
                        self.last_health.summary.total,
                    )
            await asyncio.sleep(interval)

    # ── Hooks ─────────────────────────────────────────────────────────

    def add_request_hook(self, hook: RequestHook) -> None:
        """Install an httpx request hook on every client, now and after reinitialize."""
        self.config.request_hooks.append(hook)
        for client in self._clients.values():
            client.http.add_request_hook(hook)

    def add_response_hook(self, hook: ResponseHook) -> None:
        self.config.response_hooks.append(hook)
        for client in self._clients.values():
            client.http.add_response_hook(hook)

    def add_error_hook(self, hook: ErrorHook) -> None:
        self.config.error_hooks.append(hook)
        for client in self._clients.values():
            client.http.add_error_hook(hook)

    # ── Maintenance ───────────────────────────────────────────────────

    def get_performance_stats(self) -> dict[str, ClientStats]:
        return {name: client.get_stats() for name, client in self._clients.items()}

    def clear_all_caches(self) -> int:
        cleared = sum(client.clear_cache() for client in self._clients.values())
        logger.info("Cleared %d cached responses across all clients", cleared)
        return cleared

    def reset_all_rate_limits(self) -> None:
        for client in self._clients.values():
            client.reset_rate_limits()

    def get_config_summary(self) -> dict[str, Any]:
        summary = self.config.summary()
        summary["services"] = {
            name: {
                "cache_enabled": client.config.cache.enabled,
                "cache_ttl": client.config.cache.ttl,
                "cache_max_size": client.config.cache.max_size,
                "rate_limit_enabled": client.config.rate_limit.enabled,
                "rate_limit_max_requests": client.config.rate_limit.max_requests,
            }
            for name, client in self._clients.items()
        }
        return summary

    async def reinitialize(self, config: ApiClientsConfig | None = None) -> None:
        """Rebuild every client (optionally from a new config).

        The auth token is kept and a running health monitor is restarted.
        """
        monitoring = self.is_health_checking
        await self.aclose()
        if config is not None:
            self.config = config
        self._build_clients()
        if monitoring:
            self.start_health_checking(self._health_interval)

    async def aclose(self) -> None:
        await self.stop_health_checking()
        for client in self._clients.values():
            await client.close()

    async def __aenter__(self) -> ApiClientFactory:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    # ── Shared instance ───────────────────────────────────────────────

    @classmethod
    def get_instance(
        cls,
        config: ApiClientsConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ApiClientFactory:
        """Return the shared factory, creating it on first use.

        Arguments are only honoured by the call that creates the instance.
        """
        if cls._instance is None:
            cls._instance = cls(config, transport=transport)
        elif config is not None:
            logger.debug("Shared factory already exists; ignoring new config")
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the shared factory and its caches.

        Connections are not closed here; from async code use :meth:`areset`.
        """
        if cls._instance is not None:
            cls._instance.clear_all_caches()
        cls._instance = None

    @classmethod
    async def areset(cls) -> None:
        """Close the shared factory's clients, then drop it."""
        instance = cls._instance
        if instance is not None:
            await instance.aclose()
        cls.reset()


def get_api_client_factory(config: ApiClientsConfig | None = None) -> ApiClientFactory:
    return ApiClientFactory.get_instance(config)
