import asyncio
import logging

from domain.cache import LocalCache
from domain.errors import ScalerError
from domain.gateway import ServiceGateway
from domain.models import Direction, Recipe, ScalingTip, TipDoc


logger = logging.getLogger(__name__)


SETTLE_DELAY = 3.0


class TipReconciler:
    """Picks up the tips the service generates after an AI scale.

    Generation happens asynchronously on the service with no completion
    signal, so the reconciler waits a settle delay and then looks once.
    """

    def __init__(
        self,
        *,
        gateway: ServiceGateway,
        cache: LocalCache,
        settle_delay: float = SETTLE_DELAY,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.settle_delay = settle_delay

    async def reconcile(
        self,
        base_recipe: Recipe,
        scaled_recipe_id: str,
        target_servings: int,
    ) -> None:
        try:
            tips = await self._discover(base_recipe, scaled_recipe_id, target_servings)
        except ScalerError as e:
            logger.warning(f"Tip reconciliation for {scaled_recipe_id} failed: {e}")
            return

        fresh = [t for t in tips if not self.cache.has_tip(t.id)]
        self.cache.put_tips(fresh)
        logger.info(f"Added {len(fresh)} generated tips for {scaled_recipe_id}")

    async def _discover(
        self,
        base_recipe: Recipe,
        scaled_recipe_id: str,
        target_servings: int,
    ) -> list[ScalingTip]:
        if self.settle_delay > 0:
            await asyncio.sleep(self.settle_delay)

        direction = Direction.for_servings(base_recipe.original_servings, target_servings)
        # No related-recipe filter: the service may not have attached it yet.
        results = await asyncio.gather(
            *(
                self.gateway.get_tips(method, direction)
                for method in base_recipe.cooking_methods
            ),
            return_exceptions=True,
        )

        related = {None, base_recipe.id, scaled_recipe_id}
        candidates: dict[str, TipDoc] = {}
        for method, result in zip(base_recipe.cooking_methods, results):
            if isinstance(result, BaseException):
                logger.warning(f"Could not fetch {method} tips: {result}")
                continue
            for doc in result:
                if (
                    doc.generated
                    and doc.related_recipe_id in related
                    and not self.cache.has_tip(doc.id)
                ):
                    candidates.setdefault(doc.id, doc)

        details = await asyncio.gather(
            *(self.gateway.get_tip_by_id(tip_id) for tip_id in candidates),
            return_exceptions=True,
        )

        tips: dict[str, ScalingTip] = {}
        for partial, detail in zip(candidates.values(), details):
            if isinstance(detail, BaseException) or detail is None:
                if isinstance(detail, BaseException):
                    logger.warning(f"Using partial tip {partial.id}: {detail}")
                detail = partial
            tips.setdefault(detail.id, detail.to_tip())
        return list(tips.values())
