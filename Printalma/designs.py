# designs.py
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

# Local application imports
from auth import get_current_user, get_current_vendor
from cascade import CascadeResult, get_design_or_404, resolve_affected_products, run_design_cascade
from db import get_db
from errors import ForbiddenError, InvalidStateError
from mail import get_mailer
from models import (
    Design, DesignProductLink, User, DesignValidationState, ValidationAction, Validator, ADMIN_ROLES,
)
from settings import settings
from vendor_products import DeletionResponse, VendorProductResponse

# --- Module-level Configuration ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/designs", tags=["Designs"])


# ===================================================================
# Pydantic Schemas for API Contracts
# ===================================================================

class CreateDesignRequest(BaseModel):
    """Request body for registering an uploaded design."""
    name: str = Field(..., min_length=1, max_length=255, example="Neon skull")
    image_url: str = Field(..., min_length=1, max_length=1024, example="https://res.cloudinary.com/demo/designs/skull.png")
    description: Optional[str] = None
    price: float = Field(0.0, ge=0)


class DesignResponse(BaseModel):
    """Standard response model for a design object."""
    id: int
    vendor_id: int
    name: str
    description: Optional[str]
    image_url: str
    price: float
    validation_state: DesignValidationState
    is_validated: bool
    validated_at: Optional[datetime]
    validated_by: Optional[int]
    rejection_reason: Optional[str]
    is_pending: bool
    is_draft: bool
    is_published: bool
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class DesignValidationStatus(BaseModel):
    """Lightweight validation view of a design."""
    id: int
    name: str
    validation_state: DesignValidationState
    is_validated: bool
    is_pending: bool
    is_draft: bool
    rejection_reason: Optional[str]
    validated_at: Optional[datetime]

    class Config:
        from_attributes = True


class ValidateDesignRequest(BaseModel):
    action: ValidationAction
    rejectionReason: Optional[str] = None


class DesignValidationResponse(BaseModel):
    design: DesignResponse
    autoValidation: Optional[Dict[str, Any]] = None


# ===================================================================
# Design Operations
# ===================================================================

def _state_filter(state: DesignValidationState):
    if state == DesignValidationState.VALIDATED:
        return [Design.is_validated == True]
    if state == DesignValidationState.REJECTED:
        return [
            Design.is_validated == False,
            Design.validated_at.isnot(None),
            Design.rejection_reason.isnot(None),
        ]
    return [
        Design.is_validated == False,
        Design.validated_at.is_(None),
        Design.rejection_reason.is_(None),
    ]


async def _commit_or_500(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(f"Database error while {what}.")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Could not complete: {what}.")


async def create_design(db: AsyncSession, vendor: User, payload: CreateDesignRequest) -> Design:
    """Registers a new design as a draft awaiting submission."""
    design = Design(
        vendor_id=vendor.id,
        name=payload.name,
        description=payload.description,
        image_url=payload.image_url,
        price=payload.price,
        is_draft=True,
    )
    db.add(design)
    await _commit_or_500(db, "saving a new design")
    await db.refresh(design)
    logger.info(f"🎨 Design {design.id} created by vendor {vendor.id}")
    return design


async def _notify_admins_of_submission(db: AsyncSession, design: Design, vendor: User, mailer) -> None:
    admins = (await db.execute(
        select(User).where(User.role.in_(ADMIN_ROLES), User.is_active == True)
    )).scalars().all()

    for admin in admins:
        try:
            await mailer.send(
                to=admin.email,
                subject="🎨 New design to validate - Printalma",
                template="design-submission",
                context={
                    "adminName": admin.full_name,
                    "vendorName": vendor.full_name,
                    "designName": design.name,
                    "designUrl": design.image_url,
                    "validationUrl": f"{settings.FRONTEND_URL}/admin/designs/pending",
                },
            )
        except Exception as e:
            logger.error(f"❌ Submission notification to admin {admin.id} failed: {e}")


async def submit_for_validation(db: AsyncSession, design_id: int, vendor: User, mailer) -> Design:
    """
    Puts a vendor's draft design in the admin validation queue.

    Validated and rejected designs cannot be submitted again.
    """
    design = await get_design_or_404(db, design_id)
    if design.vendor_id != vendor.id:
        raise ForbiddenError("This design does not belong to you")

    state = design.validation_state
    if state == DesignValidationState.VALIDATED:
        raise InvalidStateError("This design is already validated")
    if state == DesignValidationState.REJECTED:
        raise InvalidStateError("This design was rejected and cannot be resubmitted")
    if design.is_pending:
        raise InvalidStateError("This design is already awaiting validation")

    design.is_pending = True
    design.is_draft = False
    design.submitted_for_validation_at = datetime.now(timezone.utc)
    await _commit_or_500(db, "submitting a design for validation")

    await _notify_admins_of_submission(db, design, vendor, mailer)
    return design


async def _notify_vendor_of_decision(db: AsyncSession, design: Design, admin: User, mailer) -> None:
    vendor = await db.get(User, design.vendor_id)
    if vendor is None:
        logger.error(f"❌ Vendor {design.vendor_id} of design {design.id} not found, no notification sent")
        return

    context = {
        "vendorName": vendor.full_name,
        "designName": design.name,
        "validatorName": admin.full_name or "Administrator",
        "designUrl": design.image_url,
        "dashboardUrl": f"{settings.FRONTEND_URL}/vendor/designs",
    }
    if design.is_validated:
        template = "design-approved"
        subject = "✅ Your design was approved - Printalma"
        context["approvalDate"] = design.validated_at.strftime("%Y-%m-%d")
    else:
        template = "design-rejected"
        subject = "❌ Your design needs changes - Printalma"
        context["rejectionReason"] = design.rejection_reason

    try:
        await mailer.send(to=vendor.email, subject=subject, template=template, context=context)
    except Exception as e:
        logger.error(f"❌ Decision notification for design {design.id} failed: {e}")


async def validate_design(
    db: AsyncSession,
    design_id: int,
    admin: User,
    action: ValidationAction,
    rejection_reason: Optional[str],
    mailer,
) -> Tuple[Design, Optional[CascadeResult]]:
    """
    Records an admin's decision on a pending design.

    On VALIDATE the decision cascades to every eligible vendor product of the
    design, with the acting admin recorded as validator. A failing cascade is
    logged and never undoes the design decision. Returns the updated design
    and the cascade summary (None on REJECT).
    """
    if not admin.is_admin:
        raise ForbiddenError("Only administrators can validate designs")

    design = await get_design_or_404(db, design_id)
    if design.validation_state != DesignValidationState.PENDING:
        raise InvalidStateError("This design has already been processed (validated or rejected)")

    approved = action == ValidationAction.VALIDATE
    if not approved and not (rejection_reason or "").strip():
        raise InvalidStateError("A rejection reason is required to reject a design")

    now = datetime.now(timezone.utc)
    design.is_validated = approved
    design.validated_at = now
    design.validated_by = admin.id
    design.rejection_reason = None if approved else rejection_reason.strip()
    design.is_pending = False
    design.is_published = approved
    design.published_at = now if approved else None
    await _commit_or_500(db, "recording a design decision")
    logger.info(f"🛂 Design {design.id} {action.value} by admin {admin.id}")

    cascade = None
    if approved:
        try:
            cascade = await run_design_cascade(db, design, Validator.admin(admin.id), mailer)
        except Exception as e:
            await db.rollback()
            logger.exception(f"⚠️ Cascade after validating design {design.id} failed: {e}")
        # The cascade commits and may roll back, which expires loaded rows.
        await db.refresh(design)

    await _notify_vendor_of_decision(db, design, admin, mailer)
    return design, cascade


async def delete_design(db: AsyncSession, design_id: int, vendor: User) -> None:
    """
    Soft-deletes one of the vendor's designs and removes its product links.

    Products built on it keep their `design_id`, but a deleted design is
    never resolved again, so no later cascade or sweep reaches them through it.
    """
    design = await get_design_or_404(db, design_id)
    if design.vendor_id != vendor.id:
        raise ForbiddenError("This design does not belong to you")

    design.is_deleted = True
    await db.execute(
        delete(DesignProductLink)
        .where(DesignProductLink.design_id == design_id)
        .execution_options(synchronize_session=False)
    )
    await _commit_or_500(db, "deleting a design")
    logger.info(f"🗑️ Design {design_id} soft-deleted by vendor {vendor.id}")


async def list_vendor_designs(
    db: AsyncSession, vendor: User, state: Optional[DesignValidationState] = None
) -> List[Design]:
    query = select(Design).where(Design.vendor_id == vendor.id, Design.is_deleted == False)
    if state is not None:
        query = query.where(*_state_filter(state))
    result = await db.execute(query.order_by(Design.created_at.desc(), Design.id.desc()))
    return list(result.scalars().all())


async def list_pending_designs(db: AsyncSession, admin: User) -> List[Design]:
    """Designs submitted for validation and not yet decided, oldest first."""
    if not admin.is_admin:
        raise ForbiddenError("Only administrators can list pending designs")
    query = (
        select(Design)
        .where(Design.is_deleted == False, Design.is_pending == True, *_state_filter(DesignValidationState.PENDING))
        .order_by(Design.submitted_for_validation_at, Design.id)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_products_using_design(db: AsyncSession, design_id: int, user: User):
    design = await get_design_or_404(db, design_id)
    if not user.is_admin and design.vendor_id != user.id:
        raise ForbiddenError("This design does not belong to you")
    return await resolve_affected_products(db, design)


# ===================================================================
# API Endpoints
# ===================================================================

@router.post("/", response_model=DesignResponse, status_code=status.HTTP_201_CREATED, summary="Register a new design")
async def create_design_endpoint(
    payload: CreateDesignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
):
    """
    Saves an already-uploaded design image as a draft design. The design
    must then be submitted for admin validation.
    """
    return await create_design(db, current_user, payload)


@router.get("/", response_model=List[DesignResponse], summary="List the vendor's designs")
async def list_designs_endpoint(
    validation_state: Optional[DesignValidationState] = None,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
):
    """Lists the current vendor's designs, newest first, optionally filtered by validation state."""
    return await list_vendor_designs(db, current_user, validation_state)


@router.get("/{design_id}/validation-status", response_model=DesignValidationStatus, summary="Get a design's validation status")
async def design_validation_status_endpoint(
    design_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    design = await get_design_or_404(db, design_id)
    if not current_user.is_admin and design.vendor_id != current_user.id:
        raise ForbiddenError("This design does not belong to you")
    return design


@router.post("/{design_id}/submit", response_model=DesignResponse, summary="Submit a design for validation")
async def submit_design_endpoint(
    design_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
    mailer=Depends(get_mailer),
):
    return await submit_for_validation(db, design_id, current_user, mailer)


@router.get("/{design_id}/products", response_model=List[VendorProductResponse], summary="List products using a design")
async def design_products_endpoint(
    design_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return await get_products_using_design(db, design_id, current_user)


@router.delete("/{design_id}", response_model=DeletionResponse, summary="Delete a design")
async def delete_design_endpoint(
    design_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
):
    await delete_design(db, design_id, current_user)
    return {"success": True, "message": "Design deleted"}
