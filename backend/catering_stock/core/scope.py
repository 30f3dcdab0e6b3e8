"""Request scope dependencies: the project (tenant) and the acting user."""

from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, status


def get_project_id(x_project_id: Optional[str] = Header(None, alias="X-Project-ID")) -> int:
    """Project every ledger read and write is scoped to."""
    if not x_project_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Project-ID header is required")
    try:
        project_id = int(x_project_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Project-ID must be an integer")
    if project_id <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="X-Project-ID must be positive")
    return project_id


def get_user_id(x_user_id: Optional[str] = Header(None, alias="X-User-ID")) -> Optional[str]:
    return x_user_id.strip()[:100] if x_user_id and x_user_id.strip() else None


ProjectId = Annotated[int, Depends(get_project_id)]
UserId = Annotated[Optional[str], Depends(get_user_id)]
