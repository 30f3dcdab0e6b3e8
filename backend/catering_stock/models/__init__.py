"""SQLAlchemy models."""

from catering_stock.models.project import Project
from catering_stock.models.product import Product
from catering_stock.models.recipe import Menu, MenuRecipeLink, Recipe, RecipeIngredient
from catering_stock.models.stock import BulkMovement, MovementType, OperationType, StockMovement
from catering_stock.models.activity import ActivityLog

__all__ = [
    "Project",
    "Product",
    "Recipe",
    "RecipeIngredient",
    "Menu",
    "MenuRecipeLink",
    "BulkMovement",
    "StockMovement",
    "MovementType",
    "OperationType",
    "ActivityLog",
]
