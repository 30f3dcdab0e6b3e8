# Services module

from catering_stock.services.exceptions import (
    LedgerError,
    NotFoundError,
    InvalidRecipeError,
    EmptyMenuError,
    InsufficientStockError,
    NotReversibleError,
    ConcurrentModificationError,
    DuplicateBulkMovementError,
    InvalidBulkIdError,
    PersistenceError,
)
from catering_stock.services.ingredient_resolver import IngredientResolver, ResolvedIngredient
from catering_stock.services.consumption_calculator import (
    ConsumptionService,
    ConsumptionItem,
    ConsumptionResult,
    RecipeSnapshot,
    calculate_consumption,
)
from catering_stock.services.movement_ledger import MovementLedgerService, get_movement_ledger_service
from catering_stock.services.reversal_engine import ReversalService, ReversalResult, get_reversal_service
from catering_stock.services.movement_aggregator import (
    MovementQueryService,
    BulkMovementView,
    SingleMovementView,
    group_movements,
)
