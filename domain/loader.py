import asyncio
import logging
from typing import Iterable

import config
from domain.cache import LocalCache
from domain.errors import ScalerError
from domain.gateway import ServiceGateway
from domain.models import Direction, Recipe, ScaledRecipe, ScalingTip, User


logger = logging.getLogger(__name__)


class UserDataLoader:
    """Fills the cache with a user's recipes, scaled recipes and tips.

    Runs after login and after a session is restored. A freshly registered
    user can take a moment to become visible, so the lookup by username is
    retried before falling back to the identity the caller already has.
    """

    def __init__(
        self,
        *,
        gateway: ServiceGateway,
        cache: LocalCache,
        attempts: int = 3,
        backoff: float = 1.0,
        cooking_methods: Iterable[str] = config.COOKING_METHODS,
    ) -> None:
        self.gateway = gateway
        self.cache = cache
        self.attempts = max(1, attempts)
        self.backoff = backoff
        self.cooking_methods = list(cooking_methods)

    async def run(self, username: str, fallback_user_id: str) -> User:
        user = await self.resolve_user(username, fallback_user_id)
        await self.load(user)
        return user

    async def resolve_user(self, username: str, fallback_user_id: str) -> User:
        for attempt in range(1, self.attempts + 1):
            try:
                users = await self.gateway.get_user_by_username(username)
            except ScalerError as e:
                logger.warning(f"User lookup attempt {attempt} for {username} failed: {e}")
                users = []
            if users:
                return users[0]
            if attempt < self.attempts:
                logger.info(f"No user {username} yet, retrying in {self.backoff}s")
                await asyncio.sleep(self.backoff)

        logger.warning(f"User {username} not found, using login identity.")
        return User(id=fallback_user_id, username=username)

    async def load(self, user: User) -> None:
        try:
            recipes = await self._recipes(user)
            self.cache.put_recipes(recipes)
            scaled = await self._scaled_recipes(recipes)
            self.cache.put_scaled_recipes(scaled)
            tips = await self._tips(user, scaled)
            self.cache.put_tips(tips)
        except ScalerError as e:
            logger.error(f"Loading data for {user.username} failed: {e}")
            return
        logger.info(
            f"Loaded {len(recipes)} recipes, {len(scaled)} scaled recipes and "
            f"{len(tips)} tips for {user.username}"
        )

    async def _recipes(self, user: User) -> list[Recipe]:
        # Authorship may be recorded under either the username or the id.
        authors = list(dict.fromkeys([user.username, user.id]))
        results = await asyncio.gather(
            *(self.gateway.get_recipes_by_author(a) for a in authors),
            return_exceptions=True,
        )
        recipes: dict[str, Recipe] = {}
        for author, result in zip(authors, results):
            if isinstance(result, BaseException):
                logger.warning(f"Could not fetch recipes by {author}: {result}")
                continue
            for recipe in result:
                recipes.setdefault(recipe.id, recipe)
        return list(recipes.values())

    async def _scaled_recipes(self, recipes: list[Recipe]) -> list[ScaledRecipe]:
        results = await asyncio.gather(
            *(self.gateway.get_scaled_recipes_by_base(r.id) for r in recipes),
            return_exceptions=True,
        )
        scaled: dict[str, ScaledRecipe] = {}
        for recipe, result in zip(recipes, results):
            if isinstance(result, BaseException):
                logger.warning(f"Could not fetch scaled recipes for {recipe.id}: {result}")
                continue
            for s in result:
                scaled.setdefault(s.id, s)
        return list(scaled.values())

    async def _tips(self, user: User, scaled: list[ScaledRecipe]) -> list[ScalingTip]:
        pairs = [(m, d) for m in self.cooking_methods for d in Direction]
        results = await asyncio.gather(
            *(self.gateway.get_tips(m, d) for m, d in pairs),
            return_exceptions=True,
        )
        authors = {user.username, user.id}
        scaled_ids = {s.id for s in scaled}
        tips: dict[str, ScalingTip] = {}
        for (method, direction), result in zip(pairs, results):
            if isinstance(result, BaseException):
                logger.warning(
                    f"Could not fetch {method}/{direction.value} tips: {result}"
                )
                continue
            for doc in result:
                mine = doc.added_by in authors
                related = doc.generated and doc.related_recipe_id in scaled_ids
                if mine or related:
                    tips.setdefault(doc.id, doc.to_tip())
        return list(tips.values())
