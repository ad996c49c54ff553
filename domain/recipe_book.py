import logging

from domain.cache import LocalCache
from domain.errors import LastError, NotFound, ScalerError
from domain.gateway import ServiceGateway
from domain.models import (
    Direction,
    Ingredient,
    Recipe,
    ScaledRecipe,
    ScalingTip,
)
from domain.scaling import ScalingOrchestrator


logger = logging.getLogger(__name__)


class RecipeBook:
    """What the user can do with their recipes, over the local cache.

    Failures propagate to the caller and their message is kept in ``error``
    until the next action succeeds.
    """

    def __init__(
        self,
        *,
        gateway: ServiceGateway,
        cache: LocalCache,
        orchestrator: ScalingOrchestrator,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.orchestrator = orchestrator
        self.error = LastError()

    # Reads

    def recipe(self, recipe_id: str) -> Recipe | None:
        return self.cache.get_recipe(recipe_id)

    def recipes(self) -> list[Recipe]:
        return list(self.cache.recipes.values())

    def scaled_recipes(self, base_recipe_id: str | None = None) -> list[ScaledRecipe]:
        if base_recipe_id is None:
            return list(self.cache.scaled_recipes.values())
        return self.cache.scaled_for_base(base_recipe_id)

    def tips(
        self,
        *,
        cooking_method: str | None = None,
        direction: Direction | None = None,
    ) -> list[ScalingTip]:
        return self.cache.find_tips(cooking_method=cooking_method, direction=direction)

    # Recipes

    async def add_recipe(
        self,
        *,
        author: str,
        name: str,
        original_servings: int,
        ingredients: list[Ingredient],
        cooking_methods: list[str],
    ) -> str:
        with self.error.track():
            if original_servings <= 0:
                raise ValueError(f"Recipe {name} must serve at least one.")
            recipe_id = await self.gateway.add_recipe(
                author=author,
                name=name,
                original_servings=original_servings,
                ingredients=ingredients,
                cooking_methods=cooking_methods,
            )
            self.cache.put_recipe(
                Recipe(
                    id=recipe_id,
                    author=author,
                    name=name,
                    original_servings=original_servings,
                    ingredients=ingredients,
                    cooking_methods=cooking_methods,
                )
            )
            logger.info(f"Added recipe {name} as {recipe_id}")
            return recipe_id

    async def remove_recipe(self, recipe_id: str) -> None:
        with self.error.track():
            await self.gateway.remove_recipe(recipe_id)
            self.cache.remove_recipe(recipe_id)

    # Scaling

    async def scale_manually(self, base_recipe_id: str, target_servings: int) -> str:
        with self.error.track():
            return await self.orchestrator.scale_manually(base_recipe_id, target_servings)

    async def scale_ai(self, base_recipe_id: str, target_servings: int) -> str:
        with self.error.track():
            return await self.orchestrator.scale_ai(base_recipe_id, target_servings)

    async def get_scaled_recipe(self, scaled_recipe_id: str) -> ScaledRecipe | None:
        with self.error.track():
            found = await self.gateway.get_scaled_recipe(scaled_recipe_id)
            return found[0] if found else None

    async def find_scaled_recipes(
        self, base_recipe_id: str, target_servings: int
    ) -> list[ScaledRecipe]:
        with self.error.track():
            return await self.gateway.find_scaled_recipe(base_recipe_id, target_servings)

    async def remove_scaled_recipe(self, scaled_recipe_id: str) -> None:
        with self.error.track():
            await self.gateway.remove_scaled_recipe(scaled_recipe_id)
            self.cache.remove_scaled_recipe(scaled_recipe_id)

    async def refresh_scaled_recipes(self, base_recipe_id: str) -> None:
        if self.cache.get_recipe(base_recipe_id) is None:
            return
        for scaled in self.cache.scaled_for_base(base_recipe_id):
            try:
                found = await self.gateway.get_scaled_recipe(scaled.id)
            except ScalerError as e:
                logger.warning(f"Could not refresh scaled recipe {scaled.id}: {e}")
                continue
            if found:
                self.cache.put_scaled_recipe(found[0])

    # Tips

    async def add_manual_tip(
        self,
        *,
        cooking_method: str,
        direction: Direction,
        text: str,
        added_by: str,
        related_recipe_id: str | None = None,
    ) -> str:
        with self.error.track():
            tip_id = await self.gateway.add_manual_tip(
                cooking_method=cooking_method,
                direction=direction,
                text=text,
                added_by=added_by,
                related_recipe_id=related_recipe_id,
            )
            self.cache.put_tip(
                ScalingTip(
                    id=tip_id,
                    cooking_method=cooking_method,
                    direction=direction,
                    content=text,
                    added_by=added_by,
                    related_recipe_id=related_recipe_id,
                )
            )
            return tip_id

    async def request_tip_generation(
        self, base_recipe_id: str, target_servings: int
    ) -> list[str]:
        with self.error.track():
            recipe = self.cache.get_recipe(base_recipe_id)
            if recipe is None:
                raise NotFound(f"Recipe {base_recipe_id} is not loaded.")
            return await self.gateway.request_tip_generation(recipe, target_servings)

    async def remove_tip(self, tip_id: str) -> None:
        with self.error.track():
            await self.gateway.remove_tip(tip_id)
            self.cache.remove_tip(tip_id)

    def clear_all(self) -> None:
        self.cache.clear()
        self.error.clear()
