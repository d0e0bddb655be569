# vendor_products.py
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, get_current_vendor
from cascade import get_design_or_404
from db import get_db
from errors import ForbiddenError, InvalidStateError, NotFoundError
from links import create_link
from mail import get_mailer
from models import (
    BaseProduct, DesignProductLink, User, VendorProduct, DesignValidationState,
    PostValidationAction, VendorProductStatus, ValidatorKind,
)
from settings import settings

# --- Configuration & Setup ---
logger = logging.getLogger(__name__)
router = APIRouter(prefix="/vendor-products", tags=["Vendor Products"])


# --- Pydantic Schemas for Data Validation ---

class CreateVendorProductRequest(BaseModel):
    base_product_id: int = Field(..., gt=0)
    design_id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=255)
    price: float = Field(..., ge=0)
    post_validation_action: PostValidationAction = PostValidationAction.TO_DRAFT


class PostValidationActionRequest(BaseModel):
    action: PostValidationAction


class VendorProductResponse(BaseModel):
    """Defines the structure of a vendor product returned by our API."""
    id: int
    vendor_id: int
    base_product_id: int
    design_id: Optional[int]
    name: str
    price: float
    status: VendorProductStatus
    is_validated: bool
    post_validation_action: Optional[PostValidationAction]
    validated_at: Optional[datetime]
    validator_kind: Optional[ValidatorKind]
    validated_by: Optional[int]

    class Config:
        from_attributes = True


class DeletionResponse(BaseModel):
    success: bool
    message: str


# --- Core Vendor Product Logic ---

async def _get_owned_product(db: AsyncSession, product_id: int, vendor: User) -> VendorProduct:
    product = await db.get(VendorProduct, product_id)
    if product is None or product.is_deleted or product.vendor_id != vendor.id:
        raise NotFoundError("Product not found or not yours")
    return product


async def _commit(db: AsyncSession, what: str) -> None:
    try:
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception(f"Database error while {what}.")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"Could not complete: {what}.")


async def create_vendor_product(db: AsyncSession, vendor: User, payload: CreateVendorProductRequest) -> VendorProduct:
    """
    Applies one of the vendor's designs to a base product.

    The product starts PENDING and unvalidated whatever the design's state;
    products built on an already validated design are picked up by the
    global auto-validation sweep. Rejected designs cannot be used.
    """
    base_product = await db.get(BaseProduct, payload.base_product_id)
    if base_product is None:
        raise NotFoundError(f"Base product {payload.base_product_id} not found")

    design = await get_design_or_404(db, payload.design_id)
    if design.vendor_id != vendor.id:
        raise ForbiddenError("This design does not belong to this vendor")
    if design.validation_state == DesignValidationState.REJECTED:
        raise InvalidStateError(
            f"This design was rejected and cannot be used. Reason: {design.rejection_reason}"
        )

    product = VendorProduct(
        vendor_id=vendor.id,
        base_product_id=base_product.id,
        design_id=design.id,
        design_image_url=design.image_url,
        name=payload.name,
        price=payload.price,
        status=VendorProductStatus.PENDING,
        is_validated=False,
        post_validation_action=payload.post_validation_action,
    )
    db.add(product)
    await db.flush()
    await create_link(db, design.id, product.id)
    await _commit(db, "creating a vendor product")
    await db.refresh(product)
    logger.info(f"🧩 Vendor product {product.id} created from design {design.id}")
    return product


async def update_post_validation_action(
    db: AsyncSession, product_id: int, vendor: User, action: PostValidationAction
) -> VendorProduct:
    """Changes what happens to a pending product once its design is approved."""
    product = await _get_owned_product(db, product_id, vendor)
    if product.is_validated:
        raise InvalidStateError("Cannot change the action of an already validated product")
    if product.status != VendorProductStatus.PENDING:
        raise InvalidStateError("Only pending products can be modified")

    product.post_validation_action = action
    await _commit(db, "updating a post-validation action")
    logger.info(f"✅ Post-validation action updated: product {product_id} → {action.value}")
    return product


async def publish_validated_product(db: AsyncSession, product_id: int, vendor: User, mailer) -> VendorProduct:
    """Publishes a validated product that the cascade left as a draft."""
    product = await _get_owned_product(db, product_id, vendor)
    if not product.is_validated:
        raise InvalidStateError("The product must be validated before it can be published")
    if product.status != VendorProductStatus.DRAFT:
        raise InvalidStateError("Only validated draft products can be published")

    product.status = VendorProductStatus.PUBLISHED
    await _commit(db, "publishing a vendor product")
    logger.info(f"🚀 Product {product_id} published manually")

    try:
        await mailer.send(
            to=vendor.email,
            subject="🚀 Your product is live - Printalma",
            template="vendor-product-published",
            context={
                "vendorName": vendor.full_name,
                "productName": product.name,
                "dashboardUrl": f"{settings.FRONTEND_URL}/vendor/products",
            },
        )
    except Exception as e:
        logger.error(f"❌ Publication notification for product {product_id} failed: {e}")
    return product


async def delete_vendor_product(db: AsyncSession, product_id: int, user: User) -> None:
    """
    Soft-deletes a vendor product and removes its design links.

    Vendors may delete their own products; administrators may delete any.
    """
    product = await db.get(VendorProduct, product_id)
    if product is None or product.is_deleted:
        raise NotFoundError(f"Vendor product {product_id} not found")
    if not user.is_admin and product.vendor_id != user.id:
        raise ForbiddenError("This product does not belong to you")

    product.is_deleted = True
    await db.execute(
        delete(DesignProductLink)
        .where(DesignProductLink.vendor_product_id == product_id)
        .execution_options(synchronize_session=False)
    )
    await _commit(db, "deleting a vendor product")
    logger.info(f"🗑️ Vendor product {product_id} soft-deleted by user {user.id}")


async def list_vendor_products(db: AsyncSession, vendor: User) -> List[VendorProduct]:
    result = await db.execute(
        select(VendorProduct)
        .where(VendorProduct.vendor_id == vendor.id, VendorProduct.is_deleted == False)
        .order_by(VendorProduct.id.desc())
    )
    return list(result.scalars().all())


async def list_pending_products(db: AsyncSession) -> List[VendorProduct]:
    """Products still awaiting validation, across all vendors."""
    result = await db.execute(
        select(VendorProduct)
        .where(
            VendorProduct.status == VendorProductStatus.PENDING,
            VendorProduct.is_validated == False,
            VendorProduct.is_deleted == False,
        )
        .order_by(VendorProduct.id)
    )
    return list(result.scalars().all())


# --- API Endpoints ---

@router.post("/", response_model=VendorProductResponse, status_code=status.HTTP_201_CREATED, summary="Create a product from a design")
async def create_vendor_product_endpoint(
    payload: CreateVendorProductRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
):
    return await create_vendor_product(db, current_user, payload)


@router.get("/", response_model=List[VendorProductResponse], summary="List the vendor's products")
async def list_vendor_products_endpoint(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
):
    return await list_vendor_products(db, current_user)


@router.patch("/{product_id}/post-validation-action", response_model=VendorProductResponse, summary="Choose what happens after validation")
async def update_post_validation_action_endpoint(
    product_id: int,
    payload: PostValidationActionRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
):
    return await update_post_validation_action(db, product_id, current_user, payload.action)


@router.post("/{product_id}/publish", response_model=VendorProductResponse, summary="Publish a validated draft product")
async def publish_vendor_product_endpoint(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_vendor),
    mailer=Depends(get_mailer),
):
    return await publish_validated_product(db, product_id, current_user, mailer)


@router.delete("/{product_id}", response_model=DeletionResponse, summary="Delete a vendor product")
async def delete_vendor_product_endpoint(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    await delete_vendor_product(db, product_id, current_user)
    return {"success": True, "message": "Vendor product deleted"}
