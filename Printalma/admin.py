# admin.py
"""
Admin endpoints: design decisions, auto-validation sweeps, statistics and
design ↔ product link maintenance.
"""

import logging
from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_admin
from cascade import (
    auto_validate_all_eligible_products,
    auto_validate_products_for_design,
    get_auto_validation_stats,
)
from db import get_db
from designs import (
    DesignResponse, DesignValidationResponse, ValidateDesignRequest,
    list_pending_designs, validate_design,
)
from links import (
    cleanup_orphaned_links, get_link_stats, migrate_existing_links, verify_and_repair_links,
)
from mail import get_mailer
from models import User
from vendor_products import VendorProductResponse, list_pending_products

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/admin", tags=["Admin"])


class AutoValidationStatsOut(BaseModel):
    autoValidated: int
    manualValidated: int
    pending: int
    totalValidated: int


class CascadeSummaryOut(BaseModel):
    success: bool
    message: str
    data: Dict[str, Any]


# --- Designs ---

@router.get("/designs/pending", response_model=List[DesignResponse], summary="List designs awaiting validation")
async def pending_designs_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await list_pending_designs(db, admin)


@router.post("/designs/{design_id}/validate", response_model=DesignValidationResponse, summary="Validate or reject a design")
async def validate_design_endpoint(
    design_id: int,
    payload: ValidateDesignRequest,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
    mailer=Depends(get_mailer),
):
    """
    Records the decision on a pending design. Approving it cascades to every
    vendor product awaiting that design; the response reports how many
    products were updated and how many failed.
    """
    design, cascade = await validate_design(
        db, design_id, admin, payload.action, payload.rejectionReason, mailer
    )
    return DesignValidationResponse(
        design=DesignResponse.model_validate(design),
        autoValidation=cascade.as_dict() if cascade is not None else None,
    )


@router.post("/designs/{design_id}/auto-validate-products", response_model=CascadeSummaryOut, summary="Auto-validate the products of a validated design")
async def auto_validate_design_products_endpoint(
    design_id: int,
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
    mailer=Depends(get_mailer),
):
    result = await auto_validate_products_for_design(db, design_id, mailer)
    return CascadeSummaryOut(
        success=True,
        message=f"{len(result.updated)} product(s) auto-validated",
        data=result.as_dict(),
    )


# --- Vendor products ---

@router.post("/vendor-products/auto-validate", response_model=CascadeSummaryOut, summary="Auto-validate every eligible product")
async def auto_validate_all_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
    mailer=Depends(get_mailer),
):
    logger.info(f"🤖 Global auto-validation requested by admin {admin.id}")
    result = await auto_validate_all_eligible_products(db, mailer)
    return CascadeSummaryOut(
        success=True,
        message=f"Global auto-validation finished: {len(result.updated)} product(s) validated",
        data=result.as_dict(),
    )


@router.get("/vendor-products/pending", response_model=List[VendorProductResponse], summary="List products awaiting validation")
async def pending_products_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await list_pending_products(db)


@router.get("/stats/auto-validation", response_model=AutoValidationStatsOut, summary="Auto-validation statistics")
async def auto_validation_stats_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await get_auto_validation_stats(db)


# --- Design ↔ product links ---

@router.post("/design-links/migrate", summary="Link products known only by their legacy design url")
async def migrate_links_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await migrate_existing_links(db)


@router.post("/design-links/repair", summary="Insert missing link rows")
async def repair_links_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await verify_and_repair_links(db)


@router.post("/design-links/cleanup", summary="Delete orphaned link rows")
async def cleanup_links_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await cleanup_orphaned_links(db)


@router.get("/design-links/stats", summary="Link statistics")
async def link_stats_endpoint(
    db: AsyncSession = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return await get_link_stats(db)
