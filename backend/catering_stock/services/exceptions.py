"""Domain errors raised by the consumption and ledger services.

Every error carries a stable ``code`` (the tag sent to API clients) and the
HTTP status the API layer maps it to. ``to_dict()`` gives the structured
payload; subclasses add their own fields.
"""

from typing import Any, Dict, Iterable, List, Optional


class LedgerError(Exception):
    """Base class for all stock ledger errors."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.code, "detail": self.message}


class NotFoundError(LedgerError):
    """A referenced recipe, menu, product or bulk group does not exist."""

    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update({"entity": self.entity, "entity_id": self.entity_id})
        return data


class InvalidRecipeError(LedgerError):
    """Zero or negative serving size, quantity or guest count."""

    code = "invalid_recipe"
    status_code = 422


class EmptyMenuError(LedgerError):
    """The menu (or the item list being committed) has nothing in it."""

    code = "empty_menu"
    status_code = 422


class InsufficientStockError(LedgerError):
    """One or more products do not have enough stock."""

    code = "insufficient_stock"
    status_code = 409

    def __init__(self, products: Iterable[Dict[str, Any]], message: Optional[str] = None):
        self.products: List[Dict[str, Any]] = list(products)
        names = ", ".join(str(p.get("product_name") or p.get("product_id")) for p in self.products)
        super().__init__(message or f"Insufficient stock: {names}")

    @property
    def product_ids(self) -> List[int]:
        return [p["product_id"] for p in self.products]

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["products"] = self.products
        return data


class NotReversibleError(LedgerError):
    """The bulk movement was already reversed or cannot be reversed."""

    code = "not_reversible"
    status_code = 409

    def __init__(self, bulk_id: int, message: Optional[str] = None):
        self.bulk_id = bulk_id
        super().__init__(message or f"Bulk movement {bulk_id} cannot be reversed")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["bulk_id"] = self.bulk_id
        return data


class ConcurrentModificationError(LedgerError):
    """Stock changed under us between snapshot and write."""

    code = "concurrent_modification"
    status_code = 409

    def __init__(self, product_id: int, message: Optional[str] = None):
        self.product_id = product_id
        super().__init__(message or f"Stock of product {product_id} was modified concurrently")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["product_id"] = self.product_id
        return data


class DuplicateBulkMovementError(LedgerError):
    """A commit reused a bulk movement id that already exists."""

    code = "duplicate_bulk_movement"
    status_code = 409

    def __init__(self, bulk_id: int):
        self.bulk_id = bulk_id
        super().__init__(f"Bulk movement {bulk_id} already exists")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["bulk_id"] = self.bulk_id
        return data


class InvalidBulkIdError(LedgerError):
    """A caller-supplied bulk movement id is not a usable idempotency key."""

    code = "invalid_bulk_id"
    status_code = 422

    def __init__(self, bulk_id: Any, message: Optional[str] = None):
        self.bulk_id = bulk_id
        super().__init__(message or f"Invalid bulk movement id {bulk_id!r}")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["bulk_id"] = self.bulk_id
        return data


class PersistenceError(LedgerError):
    """The store failed while writing; nothing was applied."""

    code = "persistence_error"
    status_code = 503
