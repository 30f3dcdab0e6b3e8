"""Ingredient Resolver - expands a recipe into priced ingredient lines."""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List

from sqlalchemy.orm import Session

from catering_stock.models.product import Product
from catering_stock.models.recipe import Recipe, RecipeIngredient
from catering_stock.services.exceptions import NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedIngredient:
    """One recipe line joined with the product it consumes."""

    product_id: int
    product_name: str
    quantity_per_serving_size: Decimal
    unit: str
    unit_price: Decimal
    current_stock: Decimal


class IngredientResolver:
    """Read-only lookup of recipe ingredients within one project."""

    def __init__(self, db: Session, project_id: int):
        self.db = db
        self.project_id = project_id

    def load_recipe(self, recipe_id: int) -> Recipe:
        recipe = self.db.query(Recipe).filter(
            Recipe.id == recipe_id,
            Recipe.project_id == self.project_id,
        ).first()
        if not recipe:
            raise NotFoundError("Recipe", recipe_id)
        return recipe

    def resolve(self, recipe_id: int) -> List[ResolvedIngredient]:
        """Return the recipe's ingredients in recipe order.

        An empty list means the recipe contributes nothing; it is not an error.
        """
        self.load_recipe(recipe_id)

        rows = (
            self.db.query(RecipeIngredient, Product)
            .join(Product, Product.id == RecipeIngredient.product_id)
            .filter(RecipeIngredient.recipe_id == recipe_id)
            .order_by(RecipeIngredient.id)
            .all()
        )

        if not rows:
            logger.info(f"Recipe {recipe_id} has no ingredients")

        return [
            ResolvedIngredient(
                product_id=product.id,
                product_name=product.name,
                quantity_per_serving_size=Decimal(str(line.quantity)),
                unit=line.unit,
                unit_price=Decimal(str(product.price or 0)),
                current_stock=Decimal(str(product.stock_quantity or 0)),
            )
            for line, product in rows
        ]
