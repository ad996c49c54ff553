"""Scaling a cached recipe to a new number of servings.

The service is preferred, but a scale request is never dropped: if the
service fails with a 5xx or cannot hand back the record it created, the
scaled recipe is computed locally instead.
"""

import asyncio
from decimal import ROUND_HALF_UP, Decimal
import logging
import uuid

from domain.cache import LocalCache
from domain.errors import GatewayError, NotFound, ServerError, VerificationFailed
from domain.gateway import ServiceGateway
from domain.models import Recipe, ScaledRecipe, ScalingMethod
from domain.tips import TipReconciler


logger = logging.getLogger(__name__)


def scale_quantity(quantity: float, original_servings: int, target_servings: int) -> float:
    # Half-up on the exact binary value, so 0.125 becomes 0.13.
    exact = Decimal(quantity * (target_servings / original_servings))
    return float(exact.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def compute_fallback(
    recipe: Recipe,
    target_servings: int,
    *,
    scaled_recipe_id: str,
    scaling_method: ScalingMethod = ScalingMethod.manual,
) -> ScaledRecipe:
    return ScaledRecipe(
        id=scaled_recipe_id,
        base_recipe_id=recipe.id,
        target_servings=target_servings,
        scaled_ingredients=[
            i.with_quantity(
                scale_quantity(i.quantity, recipe.original_servings, target_servings)
            )
            for i in recipe.ingredients
        ],
        scaling_method=scaling_method,
    )


def synthetic_id() -> str:
    return f"fallback-{uuid.uuid4().hex}"


class Fallback:
    """The service could not produce the scaled recipe; build it locally."""

    def __init__(self, *, scaled_recipe_id: str, reason: str) -> None:
        self.scaled_recipe_id = scaled_recipe_id
        self.reason = reason

    def __repr__(self) -> str:
        return f"<Fallback(id={self.scaled_recipe_id}, reason={self.reason})>"


class ScalingOrchestrator:
    def __init__(
        self,
        *,
        gateway: ServiceGateway,
        cache: LocalCache,
        reconciler: TipReconciler,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.reconciler = reconciler
        self._background: set[asyncio.Task[None]] = set()

    async def scale_manually(self, base_recipe_id: str, target_servings: int) -> str:
        scaled = await self._scale(base_recipe_id, target_servings, ScalingMethod.manual)
        return scaled.id

    async def scale_ai(self, base_recipe_id: str, target_servings: int) -> str:
        scaled = await self._scale(base_recipe_id, target_servings, ScalingMethod.ai)
        recipe = self.cache.get_recipe(base_recipe_id)
        if recipe is not None:
            self._spawn(self.reconciler.reconcile(recipe, scaled.id, target_servings))
        return scaled.id

    async def join(self) -> None:
        """Wait for outstanding tip reconciliation."""
        while self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def cancel(self) -> None:
        """Drop outstanding tip reconciliation, e.g. on logout."""
        for task in self._background:
            task.cancel()
        await self.join()

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._finished)

    def _finished(self, task: asyncio.Task[None]) -> None:
        self._background.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Tip reconciliation crashed.", exc_info=task.exception())

    async def _scale(
        self,
        base_recipe_id: str,
        target_servings: int,
        method: ScalingMethod,
    ) -> ScaledRecipe:
        if target_servings <= 0:
            raise ValueError(f"Target servings must be positive, got {target_servings}.")

        recipe = self.cache.get_recipe(base_recipe_id)
        if recipe is None:
            raise NotFound(f"Recipe {base_recipe_id} is not loaded.")

        await self._verify(base_recipe_id)

        outcome = await self._request(base_recipe_id, target_servings, method)
        if isinstance(outcome, str):
            outcome = await self._fetch_canonical(outcome)

        match outcome:
            case ScaledRecipe():
                scaled = outcome
            case Fallback(scaled_recipe_id=scaled_id, reason=reason):
                logger.warning(f"Scaling {base_recipe_id} locally: {reason}")
                scaled = compute_fallback(
                    recipe,
                    target_servings,
                    scaled_recipe_id=scaled_id,
                    scaling_method=method,
                )
            case _:
                raise TypeError(f"Unexpected outcome {outcome!r}")

        self.cache.put_scaled_recipe(scaled)
        logger.info(f"Scaled {base_recipe_id} to {target_servings} as {scaled.id}")
        return scaled

    async def _verify(self, base_recipe_id: str) -> None:
        try:
            found = await self.gateway.get_recipe_by_id(base_recipe_id)
        except ServerError as e:
            logger.warning(f"Could not verify {base_recipe_id}, continuing: {e}")
            return
        except GatewayError as e:
            raise VerificationFailed(
                f"Could not verify recipe {base_recipe_id}: {e}"
            ) from e
        if not found:
            raise VerificationFailed(f"Recipe {base_recipe_id} is not on the server.")

    async def _request(
        self,
        base_recipe_id: str,
        target_servings: int,
        method: ScalingMethod,
    ) -> str | Fallback:
        scale = (
            self.gateway.scale_ai
            if method == ScalingMethod.ai
            else self.gateway.scale_manually
        )
        try:
            return await scale(base_recipe_id, target_servings)
        except ServerError as e:
            return Fallback(scaled_recipe_id=synthetic_id(), reason=str(e))

    async def _fetch_canonical(self, scaled_recipe_id: str) -> ScaledRecipe | Fallback:
        try:
            found = await self.gateway.get_scaled_recipe(scaled_recipe_id)
        except ServerError as e:
            return Fallback(scaled_recipe_id=scaled_recipe_id, reason=str(e))
        if not found:
            return Fallback(
                scaled_recipe_id=scaled_recipe_id,
                reason="service returned no scaled recipe",
            )
        return found[0]
