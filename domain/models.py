"""Local records and their wire representations.

The service speaks camelCase JSON with ``_id`` identifiers. Local records use
plain attributes and serialise back to the wire names with ``to_dict``.
"""

from enum import Enum
import time
from typing import Any, Self, TypeAlias


Doc: TypeAlias = dict[str, Any]


class ScalingMethod(Enum):
    manual = "manual"
    ai = "ai"


class Direction(Enum):
    up = "up"
    down = "down"

    @classmethod
    def for_servings(cls, original_servings: float, target_servings: float) -> Self:
        return cls.up if target_servings > original_servings else cls.down


class TipSource(Enum):
    manual = "manual"
    generated = "generated"


def _doc_id(doc: Doc, *alternatives: str) -> str:
    for key in ("_id", *alternatives):
        if doc.get(key):
            return str(doc[key])
    raise ValueError(f"Document has no identifier: {doc}")


class Ingredient:
    def __init__(
        self,
        *,
        name: str,
        quantity: float,
        unit: str,
        scaling_context: str | None = None,
        preparation: str | None = None,
    ) -> None:
        if quantity < 0:
            raise ValueError(f"Negative quantity for {name}: {quantity}")
        self.name = name
        self.quantity = quantity
        self.unit = unit
        self.scaling_context = scaling_context
        self.preparation = preparation

    def __repr__(self) -> str:
        return f"<Ingredient({self.quantity} {self.unit} {self.name})>"

    @classmethod
    def from_doc(cls, doc: Doc) -> Self:
        return cls(
            name=doc["name"],
            quantity=float(doc["quantity"]),
            unit=doc.get("unit", ""),
            scaling_context=doc.get("scalingContext"),
            preparation=doc.get("preparation"),
        )

    def with_quantity(self, quantity: float) -> "Ingredient":
        return Ingredient(
            name=self.name,
            quantity=quantity,
            unit=self.unit,
            scaling_context=self.scaling_context,
            preparation=self.preparation,
        )

    def to_dict(self) -> Doc:
        data: Doc = {"name": self.name, "quantity": self.quantity, "unit": self.unit}
        if self.scaling_context is not None:
            data["scalingContext"] = self.scaling_context
        if self.preparation is not None:
            data["preparation"] = self.preparation
        return data


class Recipe:
    def __init__(
        self,
        *,
        id: str,
        author: str,
        name: str,
        original_servings: int,
        ingredients: list[Ingredient],
        cooking_methods: list[str],
    ) -> None:
        if original_servings <= 0:
            raise ValueError(f"Recipe {name} must serve at least one.")
        self.id = id
        self.author = author
        self.name = name
        self.original_servings = original_servings
        self.ingredients = ingredients
        # Ordered, without repeats.
        self.cooking_methods = list(dict.fromkeys(cooking_methods))

    def __repr__(self) -> str:
        return f"<Recipe(id={self.id}, name={self.name})>"

    @classmethod
    def from_doc(cls, doc: Doc) -> Self:
        return cls(
            id=_doc_id(doc, "recipeId"),
            author=doc["author"],
            name=doc["name"],
            original_servings=doc["originalServings"],
            ingredients=[Ingredient.from_doc(i) for i in doc.get("ingredients", [])],
            cooking_methods=doc.get("cookingMethods", []),
        )

    def to_dict(self) -> Doc:
        return {
            "recipeId": self.id,
            "author": self.author,
            "name": self.name,
            "originalServings": self.original_servings,
            "ingredients": [i.to_dict() for i in self.ingredients],
            "cookingMethods": list(self.cooking_methods),
        }


class ScaledRecipe:
    def __init__(
        self,
        *,
        id: str,
        base_recipe_id: str,
        target_servings: int,
        scaled_ingredients: list[Ingredient],
        scaling_method: ScalingMethod,
    ) -> None:
        self.id = id
        self.base_recipe_id = base_recipe_id
        self.target_servings = target_servings
        self.scaled_ingredients = scaled_ingredients
        self.scaling_method = scaling_method

    def __repr__(self) -> str:
        return (
            f"<ScaledRecipe(id={self.id}, base={self.base_recipe_id}, "
            f"serves={self.target_servings}, method={self.scaling_method.value})>"
        )

    @classmethod
    def from_doc(cls, doc: Doc) -> Self:
        return cls(
            id=_doc_id(doc, "scaledRecipeId"),
            base_recipe_id=doc["baseRecipeId"],
            target_servings=doc["targetServings"],
            scaled_ingredients=[
                Ingredient.from_doc(i) for i in doc.get("scaledIngredients", [])
            ],
            scaling_method=ScalingMethod(doc.get("scalingMethod", "manual")),
        )

    def to_dict(self) -> Doc:
        return {
            "_id": self.id,
            "baseRecipeId": self.base_recipe_id,
            "targetServings": self.target_servings,
            "scaledIngredients": [i.to_dict() for i in self.scaled_ingredients],
            "scalingMethod": self.scaling_method.value,
        }


class ScalingTip:
    def __init__(
        self,
        *,
        id: str,
        cooking_method: str,
        direction: Direction,
        content: str,
        added_by: str,
        related_recipe_id: str | None = None,
    ) -> None:
        self.id = id
        self.cooking_method = cooking_method
        self.direction = direction
        self.content = content
        self.added_by = added_by
        self.related_recipe_id = related_recipe_id

    def __repr__(self) -> str:
        return (
            f"<ScalingTip(id={self.id}, method={self.cooking_method}, "
            f"direction={self.direction.value})>"
        )

    def to_dict(self) -> Doc:
        return {
            "tipId": self.id,
            "cookingMethod": self.cooking_method,
            "direction": self.direction.value,
            "content": self.content,
            "addedBy": self.added_by,
            "relatedRecipeId": self.related_recipe_id,
        }


class TipDoc:
    """A tip as the service returns it, including where it came from."""

    def __init__(
        self,
        *,
        id: str,
        text: str,
        cooking_method: str,
        direction: Direction,
        source: TipSource,
        related_recipe_id: str | None = None,
        added_by: str | None = None,
    ) -> None:
        self.id = id
        self.text = text
        self.cooking_method = cooking_method
        self.direction = direction
        self.source = source
        self.related_recipe_id = related_recipe_id
        self.added_by = added_by

    @classmethod
    def from_doc(cls, doc: Doc) -> Self:
        return cls(
            id=_doc_id(doc, "tipId"),
            text=doc.get("text") or doc.get("content") or "",
            cooking_method=doc["cookingMethod"],
            direction=Direction(doc["direction"]),
            source=TipSource(doc.get("source", "manual")),
            related_recipe_id=doc.get("relatedRecipeId"),
            added_by=doc.get("addedBy"),
        )

    @property
    def generated(self) -> bool:
        return self.source == TipSource.generated

    def to_tip(self) -> ScalingTip:
        return ScalingTip(
            id=self.id,
            cooking_method=self.cooking_method,
            direction=self.direction,
            content=self.text,
            added_by=self.added_by or self.source.value,
            related_recipe_id=self.related_recipe_id,
        )


class User:
    def __init__(self, *, id: str, username: str) -> None:
        self.id = id
        self.username = username

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username={self.username})>"

    @classmethod
    def from_doc(cls, doc: Doc) -> Self:
        return cls(id=_doc_id(doc, "userId", "user"), username=doc["username"])


class Session:
    def __init__(
        self,
        *,
        session_id: str,
        user_id: str,
        username: str,
        expiration_time: float | None = None,
    ) -> None:
        self.session_id = session_id
        self.user_id = user_id
        self.username = username
        # Epoch milliseconds; unknown until confirmed by the service.
        self.expiration_time = expiration_time

    def __repr__(self) -> str:
        return f"<Session(user={self.username}, expires={self.expiration_time})>"

    def is_expired(self, now_ms: float | None = None) -> bool:
        if self.expiration_time is None:
            return False
        now_ms = time.time() * 1000 if now_ms is None else now_ms
        return self.expiration_time <= now_ms

    def to_dict(self) -> dict[str, str]:
        return {
            "sessionId": self.session_id,
            "userId": self.user_id,
            "username": self.username,
        }
