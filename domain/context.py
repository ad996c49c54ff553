from typing import Any, Self

import httpx

import config
from domain.auth import AuthService
from domain.cache import LocalCache
from domain.gateway import ServiceGateway, service_client_factory
from domain.loader import UserDataLoader
from domain.recipe_book import RecipeBook
from domain.scaling import ScalingOrchestrator
from domain.session import SessionGate, SessionProvider
from domain.tips import TipReconciler


class ScalerContext:
    """Everything one signed-in client needs, around a single cache.

    Build one per session (or per test); nothing here is global.
    """

    def __init__(
        self,
        cfg: config.Config | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config.Config() if cfg is None else cfg
        client = (
            service_client_factory(
                self.config.api_base_url, self.config.request_timeout
            )
            if client is None
            else client
        )

        self.cache = LocalCache()
        self.provider = SessionProvider(self.config.session_file)
        self.gate = SessionGate(self.provider)
        self.gateway = ServiceGateway(self.gate, client=client)
        self.reconciler = TipReconciler(
            gateway=self.gateway,
            cache=self.cache,
            settle_delay=self.config.tip_settle_delay,
        )
        self.orchestrator = ScalingOrchestrator(
            gateway=self.gateway,
            cache=self.cache,
            reconciler=self.reconciler,
        )
        self.loader = UserDataLoader(
            gateway=self.gateway,
            cache=self.cache,
            attempts=self.config.user_lookup_attempts,
            backoff=self.config.user_lookup_backoff,
            cooking_methods=self.config.cooking_methods,
        )
        self.auth = AuthService(
            gateway=self.gateway,
            provider=self.provider,
            loader=self.loader,
            cache=self.cache,
            orchestrator=self.orchestrator,
            register_settle_delay=self.config.register_settle_delay,
        )
        self.book = RecipeBook(
            gateway=self.gateway,
            cache=self.cache,
            orchestrator=self.orchestrator,
        )

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: Any, **kwargs: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.orchestrator.join()
        await self.gateway.close()
