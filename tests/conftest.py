import itertools
import json
from typing import Any, AsyncIterator, Callable

import httpx
import pytest
import pytest_asyncio

import config
from domain.context import ScalerContext
from domain.models import Session


BASE_URL = "http://scaler.test"

GATED = {
    "Recipe/addRecipe",
    "Recipe/removeRecipe",
    "RecipeScaler/scaleManually",
    "RecipeScaler/scaleRecipeAI",
    "RecipeScaler/removeScaledRecipe",
    "UserAuthentication/logout",
}


class Failure:
    def __init__(
        self,
        op: str,
        outcome: int | Exception,
        *,
        times: int | None,
        when: Callable[[dict[str, Any]], bool] | None,
    ) -> None:
        self.op = op
        self.outcome = outcome
        self.times = times
        self.when = when

    def matches(self, op: str, body: dict[str, Any]) -> bool:
        if op != self.op or self.times == 0:
            return False
        return self.when is None or self.when(body)


class FakeService:
    """In-memory stand-in for the recipe service, served over MockTransport."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.recipes: dict[str, dict[str, Any]] = {}
        self.scaled: dict[str, dict[str, Any]] = {}
        self.tips: dict[str, dict[str, Any]] = {}
        self.users: dict[str, dict[str, Any]] = {}
        self.passwords: dict[str, str] = {}
        self.sessions: dict[str, dict[str, Any]] = {}
        self.failures: list[Failure] = []
        # Queries that find nothing whatever is stored.
        self.empty: set[str] = set()
        # Fuller tip documents served only by the by-id lookup.
        self.details: dict[str, dict[str, Any]] = {}
        # Number of upcoming username lookups that find nothing.
        self.hidden_lookups = 0
        self._ids = itertools.count(1)

    def next_id(self, prefix: str) -> str:
        return f"{prefix}{next(self._ids)}"

    def fail(
        self,
        op: str,
        outcome: int | Exception,
        *,
        times: int | None = 1,
        when: Callable[[dict[str, Any]], bool] | None = None,
    ) -> None:
        self.failures.append(Failure(op, outcome, times=times, when=when))

    def calls_to(self, op: str) -> list[dict[str, Any]]:
        return [body for called, body in self.calls if called == op]

    # Seeding

    def seed_user(self, username: str, password: str = "secret") -> str:
        user_id = self.next_id("u")
        self.users[user_id] = {"_id": user_id, "username": username}
        self.passwords[username] = password
        return user_id

    def seed_session(
        self, user_id: str, *, expiration_time: float = 4102444800000
    ) -> str:
        session_id = self.next_id("s")
        self.sessions[session_id] = {
            "user": user_id,
            "sessionId": session_id,
            "expirationTime": expiration_time,
        }
        return session_id

    def seed_recipe(
        self,
        *,
        author: str = "ana",
        name: str = "Pancakes",
        servings: int = 4,
        ingredients: list[dict[str, Any]] | None = None,
        cooking_methods: list[str] | None = None,
    ) -> dict[str, Any]:
        recipe_id = self.next_id("r")
        doc = {
            "_id": recipe_id,
            "author": author,
            "name": name,
            "originalServings": servings,
            "ingredients": (
                [{"name": "flour", "quantity": 2, "unit": "cup"}]
                if ingredients is None
                else ingredients
            ),
            "cookingMethods": ["baking"] if cooking_methods is None else cooking_methods,
        }
        self.recipes[recipe_id] = doc
        return doc

    def seed_scaled(self, base_recipe_id: str, target_servings: int) -> dict[str, Any]:
        scaled_id = self.next_id("sr")
        base = self.recipes[base_recipe_id]
        doc = {
            "_id": scaled_id,
            "baseRecipeId": base_recipe_id,
            "targetServings": target_servings,
            "scaledIngredients": [
                {
                    **i,
                    "quantity": round(
                        i["quantity"] * target_servings / base["originalServings"], 1
                    ),
                }
                for i in base["ingredients"]
            ],
            "scalingMethod": "manual",
        }
        self.scaled[scaled_id] = doc
        return doc

    def seed_tip(
        self,
        *,
        cooking_method: str = "baking",
        direction: str = "up",
        source: str = "generated",
        text: str = "Bake in two batches.",
        related_recipe_id: str | None = None,
        added_by: str | None = None,
    ) -> dict[str, Any]:
        tip_id = self.next_id("t")
        doc = {
            "_id": tip_id,
            "text": text,
            "cookingMethod": cooking_method,
            "direction": direction,
            "source": source,
            "relatedRecipeId": related_recipe_id,
            "addedBy": added_by,
        }
        self.tips[tip_id] = doc
        return doc

    # Transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        op = request.url.path.removeprefix("/api/")
        body = json.loads(request.content or b"{}")
        self.calls.append((op, body))

        for failure in self.failures:
            if failure.matches(op, body):
                if failure.times is not None:
                    failure.times -= 1
                if isinstance(failure.outcome, Exception):
                    raise failure.outcome
                return httpx.Response(failure.outcome, json={"error": f"{op} failed"})

        if op in self.empty:
            return httpx.Response(200, json=[])

        if op in GATED and body.get("sessionId") not in self.sessions:
            return httpx.Response(401, json={"error": "Invalid session"})

        route = ROUTES.get(op)
        if route is None:
            return httpx.Response(404, json={"error": f"No route {op}"})
        return httpx.Response(200, json=route(self, body))

    # Recipe

    def add_recipe(self, body: dict[str, Any]) -> Any:
        recipe_id = self.next_id("r")
        self.recipes[recipe_id] = {
            "_id": recipe_id,
            **{k: v for k, v in body.items() if k != "sessionId"},
        }
        return {"recipe": recipe_id}

    def remove_recipe(self, body: dict[str, Any]) -> Any:
        self.recipes.pop(body["recipeId"], None)
        return {}

    def get_recipe_by_id(self, body: dict[str, Any]) -> Any:
        doc = self.recipes.get(body["recipeId"])
        return [doc] if doc else []

    def get_recipes_by_author(self, body: dict[str, Any]) -> Any:
        return [r for r in self.recipes.values() if r["author"] == body["author"]]

    def get_recipe_by_name(self, body: dict[str, Any]) -> Any:
        return [
            r
            for r in self.recipes.values()
            if r["name"] == body["recipeName"] and r["author"] == body["author"]
        ]

    # RecipeScaler

    def scale(self, body: dict[str, Any], method: str) -> Any:
        base_id = body["baseRecipeId"]
        if base_id not in self.recipes:
            return {"error": f"Recipe {base_id} not found"}
        doc = self.seed_scaled(base_id, body["targetServings"])
        doc["scalingMethod"] = method
        return {"scaledRecipeId": doc["_id"]}

    def scale_manually(self, body: dict[str, Any]) -> Any:
        return self.scale(body, "manual")

    def scale_ai(self, body: dict[str, Any]) -> Any:
        return self.scale(body, "ai")

    def get_scaled(self, body: dict[str, Any]) -> Any:
        doc = self.scaled.get(body["scaledRecipeId"])
        return [doc] if doc else []

    def remove_scaled(self, body: dict[str, Any]) -> Any:
        self.scaled.pop(body["scaledRecipeId"], None)
        return {}

    def find_scaled(self, body: dict[str, Any]) -> Any:
        return [
            s
            for s in self.scaled.values()
            if s["baseRecipeId"] == body["baseRecipeId"]
            and s["targetServings"] == body["targetServings"]
        ]

    def get_scaled_by_base(self, body: dict[str, Any]) -> Any:
        return [
            s for s in self.scaled.values() if s["baseRecipeId"] == body["baseRecipeId"]
        ]

    # ScalingTips

    def add_manual_tip(self, body: dict[str, Any]) -> Any:
        doc = self.seed_tip(
            cooking_method=body["cookingMethod"],
            direction=body["direction"],
            source="manual",
            text=body["tipText"],
            added_by=body.get("addedBy"),
            related_recipe_id=body.get("relatedRecipeId"),
        )
        return {"tipId": doc["_id"]}

    def request_tip_generation(self, body: dict[str, Any]) -> Any:
        context = body["recipeContext"]
        direction = (
            "up" if context["targetServings"] > context["originalServings"] else "down"
        )
        docs = [
            self.seed_tip(
                cooking_method=method,
                direction=direction,
                related_recipe_id=context["recipeId"],
            )
            for method in context["cookingMethods"]
        ]
        return {"tipIds": [d["_id"] for d in docs]}

    def remove_tip(self, body: dict[str, Any]) -> Any:
        self.tips.pop(body["tipId"], None)
        return {}

    def get_tips(self, body: dict[str, Any]) -> Any:
        return [
            t
            for t in self.tips.values()
            if t["cookingMethod"] == body["cookingMethod"]
            and t["direction"] == body["direction"]
            and (
                "relatedRecipeId" not in body
                or t["relatedRecipeId"] == body["relatedRecipeId"]
            )
        ]

    def get_tip_by_id(self, body: dict[str, Any]) -> Any:
        tip_id = body["tipId"]
        return self.details.get(tip_id) or self.tips.get(tip_id) or []

    # UserAuthentication

    def register(self, body: dict[str, Any]) -> Any:
        if body["username"] in self.passwords:
            return {"error": "Username taken"}
        return {"user": self.seed_user(body["username"], body["password"])}

    def login(self, body: dict[str, Any]) -> Any:
        if self.passwords.get(body["username"]) != body["password"]:
            return {"error": "Invalid username or password"}
        user_id = next(
            u["_id"] for u in self.users.values() if u["username"] == body["username"]
        )
        return {"user": user_id, "sessionId": self.seed_session(user_id)}

    def logout(self, body: dict[str, Any]) -> Any:
        self.sessions.pop(body["sessionId"], None)
        return {}

    def get_active_session(self, body: dict[str, Any]) -> Any:
        doc = self.sessions.get(body["sessionId"])
        return [doc] if doc else []

    def get_user_by_username(self, body: dict[str, Any]) -> Any:
        if self.hidden_lookups > 0:
            self.hidden_lookups -= 1
            return []
        return [u for u in self.users.values() if u["username"] == body["username"]]

    def get_user_by_id(self, body: dict[str, Any]) -> Any:
        doc = self.users.get(body["userId"])
        return [doc] if doc else []


ROUTES: dict[str, Callable[[FakeService, dict[str, Any]], Any]] = {
    "Recipe/addRecipe": FakeService.add_recipe,
    "Recipe/removeRecipe": FakeService.remove_recipe,
    "Recipe/_getRecipeById": FakeService.get_recipe_by_id,
    "Recipe/_getRecipesByAuthor": FakeService.get_recipes_by_author,
    "Recipe/_getRecipeByName": FakeService.get_recipe_by_name,
    "RecipeScaler/scaleManually": FakeService.scale_manually,
    "RecipeScaler/scaleRecipeAI": FakeService.scale_ai,
    "RecipeScaler/_getScaledRecipe": FakeService.get_scaled,
    "RecipeScaler/removeScaledRecipe": FakeService.remove_scaled,
    "RecipeScaler/_findScaledRecipe": FakeService.find_scaled,
    "RecipeScaler/_getScaledRecipesByBaseRecipe": FakeService.get_scaled_by_base,
    "ScalingTips/addManualScalingTip": FakeService.add_manual_tip,
    "ScalingTips/requestTipGeneration": FakeService.request_tip_generation,
    "ScalingTips/removeScalingTip": FakeService.remove_tip,
    "ScalingTips/_getScalingTips": FakeService.get_tips,
    "ScalingTips/_getScalingTipById": FakeService.get_tip_by_id,
    "UserAuthentication/register": FakeService.register,
    "UserAuthentication/login": FakeService.login,
    "UserAuthentication/logout": FakeService.logout,
    "UserAuthentication/_getActiveSession": FakeService.get_active_session,
    "UserAuthentication/_getUserByUsername": FakeService.get_user_by_username,
    "UserAuthentication/_getUserById": FakeService.get_user_by_id,
}


@pytest.fixture
def service() -> FakeService:
    return FakeService()


@pytest.fixture
def cfg(tmp_path) -> config.Config:
    return config.Config(
        api_base_url=BASE_URL,
        session_file=tmp_path / "session.json",
        tip_settle_delay=0,
        user_lookup_backoff=0,
        register_settle_delay=0,
        cooking_methods=["baking", "frying"],
    )


@pytest_asyncio.fixture
async def ctx(cfg: config.Config, service: FakeService) -> AsyncIterator[ScalerContext]:
    client = httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(service.handler)
    )
    async with ScalerContext(cfg, client=client) as context:
        yield context


@pytest.fixture
def signed_in(ctx: ScalerContext, service: FakeService) -> ScalerContext:
    user_id = service.seed_user("ana")
    session_id = service.seed_session(user_id)
    ctx.provider.start(
        Session(session_id=session_id, user_id=user_id, username="ana"),
        persist=False,
    )
    return ctx
