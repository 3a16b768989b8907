"""Recipe lookup for the brew day.

Recipes are kept as a JSON list under the "recipes" key. Only what starting a
session needs is supported here: list, fetch by id, and add.
"""

import uuid
from dataclasses import asdict
from typing import Optional

from brewmaestro.db import storage
from brewmaestro.db.database import serialized
from brewmaestro.db.models import Recipe

RECIPES_KEY = "recipes"


def get_all() -> list[Recipe]:
    """Return all recipes sorted alphabetically by name."""
    recipes = [Recipe(**data) for data in storage.load(RECIPES_KEY) or []]
    return sorted(recipes, key=lambda r: r.name.lower())


def get(recipe_id: str) -> Optional[Recipe]:
    """Return a single recipe, or None if not found."""
    return next((r for r in get_all() if r.id == recipe_id), None)


@serialized
def add(recipe: Recipe) -> str:
    """Store a new recipe and return its ID."""
    recipe.id = recipe.id or uuid.uuid4().hex
    stored = storage.load(RECIPES_KEY) or []
    stored.append(asdict(recipe))
    storage.save(RECIPES_KEY, stored)
    return recipe.id
