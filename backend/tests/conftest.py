"""Pytest configuration and fixtures."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

import pytest
from decimal import Decimal
from typing import Generator

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from catering_stock.db.base import Base
from catering_stock.db.session import enable_sqlite_foreign_keys, get_db
from catering_stock.main import app
# Import all models to ensure they're registered with Base.metadata
from catering_stock.models import *
from catering_stock.models.project import Project
from catering_stock.models.product import Product
from catering_stock.models.recipe import Menu, MenuRecipeLink, Recipe, RecipeIngredient

# Use in-memory SQLite for tests
TEST_DATABASE_URL = "sqlite:///:memory:"


@pytest.fixture(scope="function")
def db_engine():
    """Create a test database engine."""
    engine = create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def db_session(db_engine) -> Generator[Session, None, None]:
    """Create a test database session."""
    SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """Create a test client with database override."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    # Disable rate limiting during tests to avoid flaky failures
    from catering_stock.core.rate_limit import limiter
    limiter.enabled = False
    # Don't raise server exceptions so we can test error status codes
    with TestClient(app, raise_server_exceptions=False) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def project(db_session: Session) -> Project:
    """Create a test project."""
    project = Project(name="Wedding Catering")
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture
def other_project(db_session: Session) -> Project:
    project = Project(name="Other Project")
    db_session.add(project)
    db_session.commit()
    db_session.refresh(project)
    return project


@pytest.fixture
def project_headers(project: Project) -> dict:
    """Headers scoping API calls to the test project."""
    return {"X-Project-ID": str(project.id), "X-User-ID": "chef"}


@pytest.fixture
def products(db_session: Session, project: Project) -> dict:
    """Flour, sugar, butter and eggs with stock and unit prices."""
    items = {
        "flour": Product(project_id=project.id, name="Flour", unit="g",
                         stock_quantity=Decimal("1000"), price=Decimal("0.02")),
        "sugar": Product(project_id=project.id, name="Sugar", unit="g",
                         stock_quantity=Decimal("500"), price=Decimal("0.03")),
        "butter": Product(project_id=project.id, name="Butter", unit="g",
                          stock_quantity=Decimal("80"), price=Decimal("0.10")),
        "eggs": Product(project_id=project.id, name="Eggs", unit="pcs",
                        stock_quantity=Decimal("30"), price=Decimal("0.25")),
    }
    db_session.add_all(items.values())
    db_session.commit()
    for product in items.values():
        db_session.refresh(product)
    return items


@pytest.fixture
def party_menu(db_session: Session, project: Project, products: dict) -> dict:
    """Menu "Party": Cake x2 (serves 4) and Cookies x1 (serves 10).

    For 8 guests it needs flour 400 + 160 = 560, sugar 200 and butter 80
    (butter exactly matches stock).
    """
    cake = Recipe(project_id=project.id, name="Cake", serving_size=4)
    cookies = Recipe(project_id=project.id, name="Cookies", serving_size=10)
    db_session.add_all([cake, cookies])
    db_session.flush()

    db_session.add_all([
        RecipeIngredient(recipe_id=cake.id, product_id=products["flour"].id, quantity=Decimal("100"), unit="g"),
        RecipeIngredient(recipe_id=cake.id, product_id=products["sugar"].id, quantity=Decimal("50"), unit="g"),
        RecipeIngredient(recipe_id=cookies.id, product_id=products["flour"].id, quantity=Decimal("200"), unit="g"),
        RecipeIngredient(recipe_id=cookies.id, product_id=products["butter"].id, quantity=Decimal("100"), unit="g"),
    ])

    menu = Menu(project_id=project.id, name="Party")
    db_session.add(menu)
    db_session.flush()
    db_session.add_all([
        MenuRecipeLink(menu_id=menu.id, recipe_id=cake.id, quantity=2),
        MenuRecipeLink(menu_id=menu.id, recipe_id=cookies.id, quantity=1),
    ])
    db_session.commit()

    return {"menu": menu, "cake": cake, "cookies": cookies, **products}


@pytest.fixture
def empty_menu(db_session: Session, project: Project) -> Menu:
    menu = Menu(project_id=project.id, name="Nothing")
    db_session.add(menu)
    db_session.commit()
    db_session.refresh(menu)
    return menu


@pytest.fixture
def stock_of(db_session: Session):
    """Read a product's current stock straight from the database."""
    def _stock_of(product: Product) -> Decimal:
        db_session.expire_all()
        return db_session.get(Product, product.id).stock_quantity
    return _stock_of
