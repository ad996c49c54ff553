from typing import Iterable

from domain.models import Direction, Recipe, ScaledRecipe, ScalingTip


class LocalCache:
    """In-memory recipes, scaled recipes and tips, keyed by id.

    Writes only ever insert or replace by id, so completions arriving in any
    order leave the same collections behind.
    """

    def __init__(self) -> None:
        self.recipes: dict[str, Recipe] = {}
        self.scaled_recipes: dict[str, ScaledRecipe] = {}
        self.tips: dict[str, ScalingTip] = {}

    def __repr__(self) -> str:
        return (
            f"<LocalCache(recipes={len(self.recipes)}, "
            f"scaled={len(self.scaled_recipes)}, tips={len(self.tips)})>"
        )

    # Recipes

    def put_recipe(self, recipe: Recipe) -> None:
        self.recipes[recipe.id] = recipe

    def put_recipes(self, recipes: Iterable[Recipe]) -> None:
        for recipe in recipes:
            self.put_recipe(recipe)

    def get_recipe(self, recipe_id: str) -> Recipe | None:
        return self.recipes.get(recipe_id)

    def remove_recipe(self, recipe_id: str) -> None:
        self.recipes.pop(recipe_id, None)
        for scaled in self.scaled_for_base(recipe_id):
            del self.scaled_recipes[scaled.id]

    # Scaled recipes

    def put_scaled_recipe(self, scaled: ScaledRecipe) -> None:
        self.scaled_recipes[scaled.id] = scaled

    def put_scaled_recipes(self, scaled_recipes: Iterable[ScaledRecipe]) -> None:
        for scaled in scaled_recipes:
            self.put_scaled_recipe(scaled)

    def get_scaled_recipe(self, scaled_recipe_id: str) -> ScaledRecipe | None:
        return self.scaled_recipes.get(scaled_recipe_id)

    def scaled_for_base(self, base_recipe_id: str) -> list[ScaledRecipe]:
        return [
            s for s in self.scaled_recipes.values() if s.base_recipe_id == base_recipe_id
        ]

    def remove_scaled_recipe(self, scaled_recipe_id: str) -> None:
        self.scaled_recipes.pop(scaled_recipe_id, None)

    # Tips

    def put_tip(self, tip: ScalingTip) -> None:
        self.tips[tip.id] = tip

    def put_tips(self, tips: Iterable[ScalingTip]) -> None:
        for tip in tips:
            self.put_tip(tip)

    def has_tip(self, tip_id: str) -> bool:
        return tip_id in self.tips

    def find_tips(
        self,
        *,
        cooking_method: str | None = None,
        direction: Direction | None = None,
    ) -> list[ScalingTip]:
        return [
            t
            for t in self.tips.values()
            if (cooking_method is None or t.cooking_method == cooking_method)
            and (direction is None or t.direction == direction)
        ]

    def remove_tip(self, tip_id: str) -> None:
        self.tips.pop(tip_id, None)

    def clear(self) -> None:
        self.recipes.clear()
        self.scaled_recipes.clear()
        self.tips.clear()
