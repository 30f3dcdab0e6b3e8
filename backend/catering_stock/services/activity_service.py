"""Activity logging service.

Writes user-facing activity entries for stock operations. An activity entry
is written after the operation it describes has committed; failing to write
it is logged and never undoes or fails the operation.
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from catering_stock.models.activity import ActivityLog

logger = logging.getLogger("activity")

MENU_CONSUMPTION = "menu_consumption"
MENU_CONSUMPTION_UNDO = "menu_consumption_undo"
STOCK_BULK_OUT = "stock_bulk_out"
STOCK_ADD = "stock_add"
STOCK_REMOVE = "stock_remove"


def log_activity(
    db: Session,
    project_id: int,
    activity_type: str,
    description: str,
    entity_type: str = "",
    entity_id=None,
    user_id: Optional[str] = None,
) -> bool:
    """Write an activity entry and commit it. Returns False if the write failed."""
    try:
        db.add(ActivityLog(
            project_id=project_id,
            activity_type=activity_type,
            description=description[:1000],
            entity_type=entity_type or None,
            entity_id=str(entity_id) if entity_id is not None else None,
            user_id=user_id,
        ))
        db.commit()
        return True
    except SQLAlchemyError:
        logger.exception(f"Failed to write activity entry '{activity_type}' for project {project_id}")
        db.rollback()
        return False
