"""Recipe and menu models."""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from catering_stock.db.base import Base, TimestampMixin


class Recipe(Base, TimestampMixin):
    """A recipe whose ingredient list is calibrated for ``serving_size`` guests."""

    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    serving_size: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Relationships
    ingredients: Mapped[list["RecipeIngredient"]] = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.id",
    )


class RecipeIngredient(Base):
    """A single product line in a recipe."""

    __tablename__ = "recipe_ingredients"

    id: Mapped[int] = mapped_column(primary_key=True)
    recipe_id: Mapped[int] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    product_id: Mapped[int] = mapped_column(
        ForeignKey("products.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)  # per serving_size
    unit: Mapped[str] = mapped_column(String(20), default="pcs", nullable=False)

    # Relationships
    recipe: Mapped["Recipe"] = relationship("Recipe", back_populates="ingredients")
    product: Mapped["Product"] = relationship("Product")


class Menu(Base, TimestampMixin):
    """A named set of recipes served together."""

    __tablename__ = "menus"

    id: Mapped[int] = mapped_column(primary_key=True)
    project_id: Mapped[int] = mapped_column(
        ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    recipe_links: Mapped[list["MenuRecipeLink"]] = relationship(
        "MenuRecipeLink",
        back_populates="menu",
        cascade="all, delete-orphan",
        order_by="MenuRecipeLink.id",
    )


class MenuRecipeLink(Base):
    """A recipe included in a menu ``quantity`` times, independent of guests."""

    __tablename__ = "menu_recipes"

    id: Mapped[int] = mapped_column(primary_key=True)
    menu_id: Mapped[int] = mapped_column(
        ForeignKey("menus.id", ondelete="CASCADE"), nullable=False, index=True
    )
    recipe_id: Mapped[int] = mapped_column(
        ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    menu: Mapped["Menu"] = relationship("Menu", back_populates="recipe_links")
    recipe: Mapped["Recipe"] = relationship("Recipe")


# Forward references
from catering_stock.models.product import Product
