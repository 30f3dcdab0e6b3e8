"""Consumption Calculator - what a menu served to N guests takes out of stock.

The arithmetic lives in ``calculate_consumption()``, a pure function over
already-resolved recipe snapshots, so it can be exercised without a database.
``ConsumptionService`` does the reads (menu, recipes, ingredients, one stock
snapshot per product) and hands the snapshots to it.

Per ingredient:
    serving_multiplier = guest_count / recipe.serving_size   (not truncated)
    needed = quantity_per_serving_size * menu_quantity * serving_multiplier

Needs are summed per product. The stock snapshot and unit price seen the
first time a product appears are used for the whole calculation.
"""

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from catering_stock.models.product import Product
from catering_stock.models.recipe import Menu
from catering_stock.services.exceptions import EmptyMenuError, InvalidRecipeError, NotFoundError
from catering_stock.services.ingredient_resolver import IngredientResolver, ResolvedIngredient

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecipeSnapshot:
    """A recipe as included in a menu, with its ingredients already resolved."""

    recipe_id: int
    name: str
    serving_size: int
    menu_quantity: int
    ingredients: Tuple[ResolvedIngredient, ...] = ()


@dataclass
class ConsumptionItem:
    """Aggregated requirement for one product. Never persisted as such."""

    product_id: int
    product_name: str
    total_needed: Decimal
    unit: str
    current_stock: Decimal
    unit_price: Decimal
    sufficient: bool
    cost: Decimal

    @property
    def shortage(self) -> Decimal:
        return max(self.total_needed - self.current_stock, Decimal("0"))


@dataclass
class ConsumptionResult:
    """Output of a menu consumption calculation."""

    menu_id: int
    menu_name: str
    guest_count: int
    items: List[ConsumptionItem] = field(default_factory=list)

    @property
    def total_cost(self) -> Decimal:
        return sum((item.cost for item in self.items), Decimal("0"))

    @property
    def all_sufficient(self) -> bool:
        return all(item.sufficient for item in self.items)

    @property
    def insufficient_products(self) -> List[ConsumptionItem]:
        return [item for item in self.items if not item.sufficient]


def _validate_guest_count(guest_count) -> int:
    if isinstance(guest_count, bool) or not isinstance(guest_count, int):
        raise InvalidRecipeError("guest_count must be a whole number")
    if guest_count <= 0:
        raise InvalidRecipeError("guest_count must be greater than zero")
    return guest_count


def _validate_recipe(recipe: RecipeSnapshot) -> None:
    if recipe.serving_size is None or recipe.serving_size <= 0:
        raise InvalidRecipeError(
            f"Recipe '{recipe.name}' (ID: {recipe.recipe_id}) has invalid serving size {recipe.serving_size}"
        )
    if recipe.menu_quantity is None or recipe.menu_quantity <= 0:
        raise InvalidRecipeError(
            f"Recipe '{recipe.name}' (ID: {recipe.recipe_id}) has invalid menu quantity {recipe.menu_quantity}"
        )
    for ingredient in recipe.ingredients:
        if ingredient.quantity_per_serving_size is None or ingredient.quantity_per_serving_size <= 0:
            raise InvalidRecipeError(
                f"Recipe '{recipe.name}' has invalid quantity {ingredient.quantity_per_serving_size} "
                f"for '{ingredient.product_name}'"
            )


def calculate_consumption(
    recipes: Sequence[RecipeSnapshot],
    guest_count: int,
) -> List[ConsumptionItem]:
    """Aggregate per-product needs for ``recipes`` served to ``guest_count`` guests.

    Raises:
        EmptyMenuError: no recipes given.
        InvalidRecipeError: guest count, serving size or quantity out of range.
    """
    guest_count = _validate_guest_count(guest_count)
    if not recipes:
        raise EmptyMenuError("Menu has no recipes")

    # Validate everything before computing anything
    for recipe in recipes:
        _validate_recipe(recipe)

    consumption: Dict[int, ConsumptionItem] = {}
    guests = Decimal(guest_count)

    for recipe in recipes:
        recipe_multiplier = Decimal(recipe.menu_quantity)
        serving_multiplier = guests / Decimal(recipe.serving_size)

        for ingredient in recipe.ingredients:
            needed = ingredient.quantity_per_serving_size * recipe_multiplier * serving_multiplier

            existing = consumption.get(ingredient.product_id)
            if existing is None:
                consumption[ingredient.product_id] = ConsumptionItem(
                    product_id=ingredient.product_id,
                    product_name=ingredient.product_name,
                    total_needed=needed,
                    unit=ingredient.unit,
                    current_stock=ingredient.current_stock,
                    unit_price=ingredient.unit_price,
                    sufficient=ingredient.current_stock >= needed,
                    cost=needed * ingredient.unit_price,
                )
            else:
                existing.total_needed += needed
                existing.cost += needed * existing.unit_price
                existing.sufficient = existing.current_stock >= existing.total_needed

    return list(consumption.values())


class ConsumptionService:
    """Loads a menu and calculates its consumption for a guest count."""

    def __init__(self, db: Session, project_id: int):
        self.db = db
        self.project_id = project_id
        self.resolver = IngredientResolver(db, project_id)

    def load_menu(self, menu_id: int) -> Menu:
        menu = self.db.query(Menu).filter(
            Menu.id == menu_id,
            Menu.project_id == self.project_id,
        ).first()
        if not menu:
            raise NotFoundError("Menu", menu_id)
        return menu

    def snapshot_menu(self, menu: Menu) -> List[RecipeSnapshot]:
        """Resolve every recipe of ``menu`` with one stock reading per product."""
        resolved: Dict[int, List[ResolvedIngredient]] = {}
        stock_snapshot: Dict[int, ResolvedIngredient] = {}
        snapshots: List[RecipeSnapshot] = []

        for link in menu.recipe_links:
            recipe = self.resolver.load_recipe(link.recipe_id)
            if recipe.id not in resolved:
                resolved[recipe.id] = self.resolver.resolve(recipe.id)

            ingredients = []
            for ingredient in resolved[recipe.id]:
                # Pin each product to the first stock/price reading of this calculation
                first_seen = stock_snapshot.setdefault(ingredient.product_id, ingredient)
                ingredients.append(ResolvedIngredient(
                    product_id=ingredient.product_id,
                    product_name=ingredient.product_name,
                    quantity_per_serving_size=ingredient.quantity_per_serving_size,
                    unit=ingredient.unit,
                    unit_price=first_seen.unit_price,
                    current_stock=first_seen.current_stock,
                ))

            snapshots.append(RecipeSnapshot(
                recipe_id=recipe.id,
                name=recipe.name,
                serving_size=recipe.serving_size,
                menu_quantity=link.quantity,
                ingredients=tuple(ingredients),
            ))

        return snapshots

    def calculate(self, menu_id: int, guest_count: int) -> ConsumptionResult:
        menu = self.load_menu(menu_id)
        if not menu.recipe_links:
            raise EmptyMenuError(f"Menu '{menu.name}' has no recipes")

        items = calculate_consumption(self.snapshot_menu(menu), guest_count)
        result = ConsumptionResult(
            menu_id=menu.id,
            menu_name=menu.name,
            guest_count=guest_count,
            items=items,
        )

        if not result.all_sufficient:
            logger.info(
                f"Menu '{menu.name}' for {guest_count} guests is short on "
                f"{len(result.insufficient_products)} product(s)"
            )
        return result


def items_from_lines(
    lines: Sequence[Tuple[int, Decimal]],
    products: Dict[int, Product],
) -> List[ConsumptionItem]:
    """Build consumption items for a manual bulk stock out.

    ``products`` maps product id to a loaded Product. Repeated product ids
    are summed.
    """
    items: Dict[int, ConsumptionItem] = {}
    for product_id, quantity in lines:
        quantity = Decimal(str(quantity))
        if quantity <= 0:
            raise InvalidRecipeError(f"Quantity for product {product_id} must be greater than zero")

        product = products[product_id]
        stock = Decimal(str(product.stock_quantity or 0))
        price = Decimal(str(product.price or 0))

        existing: Optional[ConsumptionItem] = items.get(product_id)
        if existing is None:
            items[product_id] = ConsumptionItem(
                product_id=product.id,
                product_name=product.name,
                total_needed=quantity,
                unit=product.unit,
                current_stock=stock,
                unit_price=price,
                sufficient=stock >= quantity,
                cost=quantity * price,
            )
        else:
            existing.total_needed += quantity
            existing.cost += quantity * existing.unit_price
            existing.sufficient = existing.current_stock >= existing.total_needed

    return list(items.values())
