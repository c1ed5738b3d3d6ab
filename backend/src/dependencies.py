"""Global FastAPI dependencies for tenant isolation.

Authentication happens upstream; the gateway forwards the caller's
organization in the ``X-Org-ID`` header.

This module provides:
- get_org_id: Tenant id from the X-Org-ID header
- validate_org_exists: Tenant id that references an existing organization

All multi-tenant endpoints should depend on one of these and pass org_id
explicitly to the services.
"""

from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from database import get_db
from models.org import Org

ORG_HEADER = "X-Org-ID"


def get_org_id(x_org_id: Optional[str] = Header(None, alias=ORG_HEADER)) -> UUID:
    """Extract the tenant id from the X-Org-ID header.

    Raises:
        HTTPException 400: If the header is missing or not a UUID

    Example:
        @router.get("/price-lists")
        def list_price_lists(
            db: Session = Depends(get_db),
            org_id: UUID = Depends(get_org_id)
        ):
            return PriceListStore(db).query_price_lists(org_id, filters)
    """
    if not x_org_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing {ORG_HEADER} header",
        )
    try:
        return UUID(x_org_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {ORG_HEADER} header: {x_org_id}",
        )


def validate_org_exists(
    org_id: UUID = Depends(get_org_id),
    db: Session = Depends(get_db)
) -> UUID:
    """Validate that org_id references an existing organization.

    Returns 404 for unknown organizations so callers cannot write rows that
    violate the org foreign key.

    Raises:
        HTTPException 404: If organization doesn't exist
    """
    org = db.query(Org).filter(Org.id == org_id).first()
    if not org:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Organization not found",
        )

    return org_id
