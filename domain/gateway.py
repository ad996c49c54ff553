"""Thin client for the recipe service's RPC-over-POST API.

Every operation is ``POST /api/<Group>/<operation>`` with a JSON body. Queries
(leading underscore) answer with a JSON array. Failures are classified into the
``GatewayError`` family so callers can decide what is tolerable.
"""

from enum import Enum
import logging
from typing import Any

import httpx

from domain.errors import (
    GatewayError,
    NetworkError,
    ServerError,
    Unauthorized,
    ValidationError,
)
from domain.models import (
    Direction,
    Doc,
    Ingredient,
    Recipe,
    ScaledRecipe,
    Session,
    TipDoc,
    User,
)
from domain.session import SessionGate


logger = logging.getLogger(__name__)


DEFAULT_BASE_URL = "http://localhost:8000"
TIMEOUT = 10


class Operation(Enum):
    add_recipe = "Recipe/addRecipe"
    remove_recipe = "Recipe/removeRecipe"
    get_recipe_by_id = "Recipe/_getRecipeById"
    get_recipes_by_author = "Recipe/_getRecipesByAuthor"
    get_recipe_by_name = "Recipe/_getRecipeByName"

    scale_manually = "RecipeScaler/scaleManually"
    scale_ai = "RecipeScaler/scaleRecipeAI"
    get_scaled = "RecipeScaler/_getScaledRecipe"
    remove_scaled = "RecipeScaler/removeScaledRecipe"
    find_scaled = "RecipeScaler/_findScaledRecipe"
    get_scaled_by_base = "RecipeScaler/_getScaledRecipesByBaseRecipe"

    add_manual_tip = "ScalingTips/addManualScalingTip"
    request_tip_generation = "ScalingTips/requestTipGeneration"
    remove_tip = "ScalingTips/removeScalingTip"
    get_tips = "ScalingTips/_getScalingTips"
    get_tip_by_id = "ScalingTips/_getScalingTipById"

    register = "UserAuthentication/register"
    login = "UserAuthentication/login"
    logout = "UserAuthentication/logout"
    get_active_session = "UserAuthentication/_getActiveSession"
    get_user_by_username = "UserAuthentication/_getUserByUsername"
    get_user_by_id = "UserAuthentication/_getUserById"

    @property
    def path(self) -> str:
        return f"/api/{self.value}"

    @property
    def gated(self) -> bool:
        return self in GATED_OPERATIONS


GATED_OPERATIONS = frozenset(
    {
        Operation.add_recipe,
        Operation.remove_recipe,
        Operation.scale_manually,
        Operation.scale_ai,
        Operation.remove_scaled,
        Operation.logout,
    }
)


def service_client_factory(
    base_url: str | None = None,
    timeout: float | None = None,
) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=DEFAULT_BASE_URL if base_url is None else base_url,
        headers={"Content-Type": "application/json"},
        timeout=TIMEOUT if timeout is None else timeout,
    )


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return resp.text


class ServiceGateway:
    def __init__(
        self,
        gate: SessionGate,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.gate = gate
        self.client = service_client_factory() if client is None else client

    async def call(self, operation: Operation, payload: Doc | None = None) -> Any:
        payload = {} if payload is None else payload
        if operation.gated:
            payload = self.gate.authorize(payload)

        logger.debug(f"POST {operation.path}")
        try:
            resp = await self.client.post(operation.path, json=payload)
        except httpx.TransportError as e:
            raise NetworkError(
                f"{operation.value}: {e}", operation=operation.value
            ) from e

        status = resp.status_code
        if status >= 500:
            raise ServerError(
                f"{operation.value}: {_error_message(resp)}",
                operation=operation.value,
                status_code=status,
            )
        if status in (401, 403):
            raise Unauthorized(
                _error_message(resp), operation=operation.value, status_code=status
            )
        if status >= 400:
            raise ValidationError(
                _error_message(resp), operation=operation.value, status_code=status
            )

        if not resp.content:
            return None
        data = resp.json()
        if isinstance(data, dict) and "error" in data:
            raise ValidationError(
                str(data["error"]), operation=operation.value, status_code=status
            )
        return data

    async def query(self, operation: Operation, payload: Doc) -> list[Doc]:
        data = await self.call(operation, payload)
        if data is None:
            return []
        if isinstance(data, dict):
            return [data]
        return list(data)

    async def close(self) -> None:
        await self.client.aclose()

    # Recipe

    async def add_recipe(
        self,
        *,
        author: str,
        name: str,
        original_servings: int,
        ingredients: list[Ingredient],
        cooking_methods: list[str],
    ) -> str:
        data = await self.call(
            Operation.add_recipe,
            {
                "author": author,
                "name": name,
                "originalServings": original_servings,
                "ingredients": [i.to_dict() for i in ingredients],
                "cookingMethods": cooking_methods,
            },
        )
        return _required(data, "recipe", Operation.add_recipe)

    async def remove_recipe(self, recipe_id: str) -> None:
        await self.call(Operation.remove_recipe, {"recipeId": recipe_id})

    async def get_recipe_by_id(self, recipe_id: str) -> list[Recipe]:
        docs = await self.query(Operation.get_recipe_by_id, {"recipeId": recipe_id})
        return [Recipe.from_doc(d) for d in docs]

    async def get_recipes_by_author(self, author: str) -> list[Recipe]:
        docs = await self.query(Operation.get_recipes_by_author, {"author": author})
        return [Recipe.from_doc(d) for d in docs]

    async def get_recipe_by_name(self, name: str, author: str) -> list[Recipe]:
        docs = await self.query(
            Operation.get_recipe_by_name, {"recipeName": name, "author": author}
        )
        return [Recipe.from_doc(d) for d in docs]

    # RecipeScaler

    async def scale_manually(self, base_recipe_id: str, target_servings: int) -> str:
        data = await self.call(
            Operation.scale_manually,
            {"baseRecipeId": base_recipe_id, "targetServings": target_servings},
        )
        return _required(data, "scaledRecipeId", Operation.scale_manually)

    async def scale_ai(self, base_recipe_id: str, target_servings: int) -> str:
        data = await self.call(
            Operation.scale_ai,
            {"baseRecipeId": base_recipe_id, "targetServings": target_servings},
        )
        return _required(data, "scaledRecipeId", Operation.scale_ai)

    async def get_scaled_recipe(self, scaled_recipe_id: str) -> list[ScaledRecipe]:
        docs = await self.query(
            Operation.get_scaled, {"scaledRecipeId": scaled_recipe_id}
        )
        return [ScaledRecipe.from_doc(d) for d in docs]

    async def remove_scaled_recipe(self, scaled_recipe_id: str) -> None:
        await self.call(Operation.remove_scaled, {"scaledRecipeId": scaled_recipe_id})

    async def find_scaled_recipe(
        self, base_recipe_id: str, target_servings: int
    ) -> list[ScaledRecipe]:
        docs = await self.query(
            Operation.find_scaled,
            {"baseRecipeId": base_recipe_id, "targetServings": target_servings},
        )
        return [ScaledRecipe.from_doc(d) for d in docs]

    async def get_scaled_recipes_by_base(self, base_recipe_id: str) -> list[ScaledRecipe]:
        docs = await self.query(
            Operation.get_scaled_by_base, {"baseRecipeId": base_recipe_id}
        )
        return [ScaledRecipe.from_doc(d) for d in docs]

    # ScalingTips

    async def add_manual_tip(
        self,
        *,
        cooking_method: str,
        direction: Direction,
        text: str,
        added_by: str | None = None,
        related_recipe_id: str | None = None,
    ) -> str:
        payload = {
            "cookingMethod": cooking_method,
            "direction": direction.value,
            "tipText": text,
            "addedBy": added_by,
        }
        if related_recipe_id is not None:
            payload["relatedRecipeId"] = related_recipe_id
        data = await self.call(Operation.add_manual_tip, payload)
        return _required(data, "tipId", Operation.add_manual_tip)

    async def request_tip_generation(
        self, recipe: Recipe, target_servings: int
    ) -> list[str]:
        data = await self.call(
            Operation.request_tip_generation,
            {
                "recipeContext": {
                    "recipeId": recipe.id,
                    "name": recipe.name,
                    "originalServings": recipe.original_servings,
                    "targetServings": target_servings,
                    "ingredients": [i.to_dict() for i in recipe.ingredients],
                    "cookingMethods": recipe.cooking_methods,
                }
            },
        )
        data = data or {}
        return list(data.get("tipIds") or data.get("generatedTipIds") or [])

    async def remove_tip(self, tip_id: str) -> None:
        await self.call(Operation.remove_tip, {"tipId": tip_id})

    async def get_tips(
        self,
        cooking_method: str,
        direction: Direction,
        *,
        related_recipe_id: str | None = None,
    ) -> list[TipDoc]:
        payload: Doc = {"cookingMethod": cooking_method, "direction": direction.value}
        if related_recipe_id is not None:
            payload["relatedRecipeId"] = related_recipe_id
        docs = await self.query(Operation.get_tips, payload)
        return [TipDoc.from_doc(d) for d in docs]

    async def get_tip_by_id(self, tip_id: str) -> TipDoc | None:
        docs = await self.query(Operation.get_tip_by_id, {"tipId": tip_id})
        return TipDoc.from_doc(docs[0]) if docs else None

    # UserAuthentication

    async def register(self, username: str, password: str) -> str:
        data = await self.call(
            Operation.register, {"username": username, "password": password}
        )
        return _required(data, "user", Operation.register)

    async def login(self, username: str, password: str) -> tuple[str, str]:
        """Returns ``(user_id, session_id)``."""
        data = await self.call(
            Operation.login, {"username": username, "password": password}
        )
        return (
            _required(data, "user", Operation.login),
            _required(data, "sessionId", Operation.login),
        )

    async def logout(self, session_id: str) -> None:
        await self.call(Operation.logout, {"sessionId": session_id})

    async def get_active_session(self, session_id: str) -> list[Session]:
        docs = await self.query(
            Operation.get_active_session, {"sessionId": session_id}
        )
        return [
            Session(
                session_id=d.get("sessionId", session_id),
                user_id=d["user"],
                username=d.get("username", ""),
                expiration_time=d.get("expirationTime"),
            )
            for d in docs
        ]

    async def get_user_by_username(self, username: str) -> list[User]:
        docs = await self.query(Operation.get_user_by_username, {"username": username})
        return [User.from_doc(d) for d in docs]

    async def get_user_by_id(self, user_id: str) -> list[User]:
        docs = await self.query(Operation.get_user_by_id, {"userId": user_id})
        return [User.from_doc(d) for d in docs]


def _required(data: Any, key: str, operation: Operation) -> str:
    if not isinstance(data, dict) or not data.get(key):
        raise GatewayError(
            f"{operation.value}: response is missing '{key}'. {data}",
            operation=operation.value,
        )
    return str(data[key])
