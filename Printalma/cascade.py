# cascade.py
"""
Design validation cascade.

When an admin approves a design, every vendor product built from that design
and still awaiting validation moves to PUBLISHED or DRAFT, depending on the
post-validation action its vendor chose. This module holds:

1.  The link resolver, which finds the products affected by a design through
    the link table, the direct `design_id` column, or the legacy image url.
2.  The validation applier, which updates each eligible product in its own
    transaction and notifies its vendor.
3.  The sweeps that reconcile products which missed a per-design cascade.
4.  The auto-validation statistics.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from errors import NotFoundError, InvalidStateError, NotificationError
from links import create_link
from models import (
    Design, DesignProductLink, VendorProduct, User,
    VendorProductStatus, PostValidationAction, ValidationAction,
    DesignValidationState, Validator, ValidatorKind,
)
from settings import settings

logger = logging.getLogger(__name__)


# ===================================================================
# Result types
# ===================================================================

@dataclass(frozen=True)
class UpdatedProduct:
    """Snapshot of a product right after the cascade validated it."""
    id: int
    vendor_id: int
    name: str
    status: VendorProductStatus
    is_validated: bool
    validated_at: Optional[datetime]
    validator_kind: ValidatorKind
    validated_by: Optional[int]

    @classmethod
    def from_model(cls, product: VendorProduct) -> "UpdatedProduct":
        return cls(
            id=product.id,
            vendor_id=product.vendor_id,
            name=product.name,
            status=product.status,
            is_validated=product.is_validated,
            validated_at=product.validated_at,
            validator_kind=product.validator_kind,
            validated_by=product.validated_by,
        )

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "vendorId": self.vendor_id,
            "name": self.name,
            "status": self.status.value,
            "isValidated": self.is_validated,
            "validatedAt": self.validated_at.isoformat() if self.validated_at else None,
            "validatorKind": self.validator_kind.value,
            "validatedBy": self.validated_by,
        }


@dataclass(frozen=True)
class CascadeFailure:
    product_id: int
    reason: str


@dataclass
class CascadeResult:
    """Best-effort summary of a cascade run."""
    updated: List[UpdatedProduct] = field(default_factory=list)
    failures: List[CascadeFailure] = field(default_factory=list)
    skipped: int = 0

    @property
    def errors(self) -> int:
        return len(self.failures)

    @property
    def updated_ids(self) -> List[int]:
        return [product.id for product in self.updated]

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": len(self.updated),
            "updatedProductIds": self.updated_ids,
            "updatedProducts": [product.as_dict() for product in self.updated],
            "errors": self.errors,
            "failures": [{"productId": f.product_id, "reason": f.reason} for f in self.failures],
            "skipped": self.skipped,
        }


# ===================================================================
# Link Resolver
# ===================================================================

async def get_design_or_404(db: AsyncSession, design_id: int) -> Design:
    design = await db.get(Design, design_id)
    if design is None or design.is_deleted:
        raise NotFoundError(f"Design {design_id} not found")
    return design


async def resolve_affected_products(db: AsyncSession, design: Design) -> List[VendorProduct]:
    """
    Returns the vendor products referencing `design`, ordered by id.

    Passes run in order and stop at the first one with results:
    link table, then direct `design_id`, then legacy image url within the
    design's vendor. Products found by url are healed: their `design_id` is
    backfilled and the missing link row is inserted.
    """
    linked = await db.execute(
        select(VendorProduct)
        .join(DesignProductLink, DesignProductLink.vendor_product_id == VendorProduct.id)
        .where(DesignProductLink.design_id == design.id)
        .order_by(VendorProduct.id)
    )
    products = linked.scalars().unique().all()
    if products:
        logger.info(f"📋 Design {design.id}: {len(products)} product(s) via link table")
        return list(products)

    direct = await db.execute(
        select(VendorProduct)
        .where(VendorProduct.design_id == design.id)
        .order_by(VendorProduct.id)
    )
    products = direct.scalars().all()
    if products:
        logger.info(f"📋 Design {design.id}: {len(products)} product(s) via design_id")
        return list(products)

    by_url = await db.execute(
        select(VendorProduct)
        .where(
            VendorProduct.vendor_id == design.vendor_id,
            VendorProduct.design_image_url == design.image_url,
        )
        .order_by(VendorProduct.id)
    )
    products = by_url.scalars().all()
    if not products:
        logger.info(f"⚠️ Design {design.id}: no products found")
        return []

    logger.info(f"📋 Design {design.id}: {len(products)} product(s) via legacy url, healing links")
    for product in products:
        if product.design_id is None:
            product.design_id = design.id
        await create_link(db, design.id, product.id)
    await db.commit()
    return list(products)


async def resolve_affected_products_for_design_id(db: AsyncSession, design_id: int) -> List[VendorProduct]:
    design = await get_design_or_404(db, design_id)
    return await resolve_affected_products(db, design)


# ===================================================================
# Validation Applier
# ===================================================================

def target_status(action: Optional[PostValidationAction]) -> VendorProductStatus:
    if action == PostValidationAction.AUTO_PUBLISH:
        return VendorProductStatus.PUBLISHED
    return VendorProductStatus.DRAFT


async def _validate_product(
    db: AsyncSession,
    product_id: int,
    action: Optional[PostValidationAction],
    validator: Validator,
) -> Optional[VendorProduct]:
    """
    Validates one product with a single conditional UPDATE and commits.

    Returns None, without writing, when the product is no longer eligible
    (validated by a concurrent run, moved out of PENDING, or deleted).
    """
    stmt = (
        update(VendorProduct)
        .where(
            VendorProduct.id == product_id,
            VendorProduct.is_validated == False,
            VendorProduct.status == VendorProductStatus.PENDING,
            VendorProduct.is_deleted == False,
        )
        .values(
            status=target_status(action),
            is_validated=True,
            validated_at=datetime.now(timezone.utc),
            validator_kind=validator.kind,
            validated_by=validator.admin_id,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        return None
    await db.commit()
    return await db.get(VendorProduct, product_id, populate_existing=True)


async def notify_product_validated(db: AsyncSession, product: VendorProduct, mailer) -> None:
    """Tells the vendor their product was published or saved as a draft."""
    vendor = await db.get(User, product.vendor_id)
    if vendor is None:
        raise NotificationError(f"Vendor {product.vendor_id} not found")

    if product.status == VendorProductStatus.PUBLISHED:
        template = "vendor-product-auto-published"
        subject = "🎉 Your product was published automatically - Printalma"
    else:
        template = "vendor-product-validated-draft"
        subject = "✅ Your product was validated - ready to publish - Printalma"

    await mailer.send(
        to=vendor.email,
        subject=subject,
        template=template,
        context={
            "vendorName": vendor.full_name,
            "productName": product.name or "Untitled product",
            "productPrice": f"{product.price:.2f}",
            "dashboardUrl": f"{settings.FRONTEND_URL}/vendor/products",
        },
    )


async def apply_validation_outcome(
    db: AsyncSession,
    candidates: Sequence[VendorProduct],
    outcome: ValidationAction,
    validator: Validator,
    mailer,
) -> CascadeResult:
    """
    Applies a design's outcome to the eligible candidates.

    Only PENDING, unvalidated products are touched; the rest are counted as
    skipped. A REJECT leaves every product unchanged. Per-product failures are
    recorded in the result and never stop the run.
    """
    eligible = [product for product in candidates if product.is_eligible]
    # Snapshot before any commit/rollback expires the loaded instances.
    targets = [(product.id, product.post_validation_action) for product in eligible]
    result = CascadeResult(skipped=len(candidates) - len(eligible))

    if outcome == ValidationAction.REJECT:
        logger.info(f"Design rejected: {len(targets)} eligible product(s) left pending")
        return result

    logger.info(f"🎯 Eligible products: {len(targets)} (skipped {result.skipped})")

    for product_id, action in targets:
        try:
            updated = await _validate_product(db, product_id, action, validator)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"❌ Product {product_id} update failed: {e}")
            result.failures.append(CascadeFailure(product_id, f"database error: {e}"))
            continue

        if updated is None:
            logger.error(f"❌ Product {product_id} already validated or no longer pending")
            result.failures.append(CascadeFailure(product_id, "already validated or no longer pending"))
            continue

        logger.info(
            f"✅ Product {product_id} → {updated.status.value} "
            f"(action: {action.value if action else 'unset'}, validator: {validator.kind.value})"
        )
        result.updated.append(UpdatedProduct.from_model(updated))

        try:
            await notify_product_validated(db, updated, mailer)
        except Exception as e:
            logger.exception(f"❌ Notification failed for product {product_id}: {e}")

    logger.info(
        f"🎉 Cascade finished: {len(result.updated)} updated, {result.errors} error(s), "
        f"{result.skipped} skipped"
    )
    return result


async def run_design_cascade(
    db: AsyncSession,
    design: Design,
    validator: Validator,
    mailer,
) -> CascadeResult:
    """Resolves and validates every eligible product of an approved design."""
    logger.info(f"🔍 Cascade for design {design.id} (validator: {validator.kind.value} {validator.admin_id or ''})")
    candidates = await resolve_affected_products(db, design)
    return await apply_validation_outcome(db, candidates, ValidationAction.VALIDATE, validator, mailer)


# ===================================================================
# Sweeps
# ===================================================================

async def auto_validate_products_for_design(db: AsyncSession, design_id: int, mailer) -> CascadeResult:
    """Runs the cascade for one already-validated design as the system."""
    design = await get_design_or_404(db, design_id)
    if design.validation_state != DesignValidationState.VALIDATED:
        raise InvalidStateError("The design must be validated before its products can be auto-validated")
    return await run_design_cascade(db, design, Validator.SYSTEM, mailer)


async def auto_validate_all_eligible_products(db: AsyncSession, mailer) -> CascadeResult:
    """
    Validates every eligible product whose design is already validated,
    whether it references the design directly or through the link table.
    Running it again without intervening changes updates nothing.
    """
    validated_designs = select(Design.id).where(
        Design.is_validated == True,
        Design.is_deleted == False,
    )
    linked_to_validated = select(DesignProductLink.vendor_product_id).where(
        DesignProductLink.design_id.in_(validated_designs)
    )
    query = (
        select(VendorProduct)
        .where(
            VendorProduct.status == VendorProductStatus.PENDING,
            VendorProduct.is_validated == False,
            VendorProduct.is_deleted == False,
            or_(
                VendorProduct.design_id.in_(validated_designs),
                VendorProduct.id.in_(linked_to_validated),
            ),
        )
        .order_by(VendorProduct.id)
    )
    candidates = (await db.execute(query)).scalars().all()
    logger.info(f"🤖 Global auto-validation: {len(candidates)} eligible product(s)")
    return await apply_validation_outcome(db, candidates, ValidationAction.VALIDATE, Validator.SYSTEM, mailer)


# ===================================================================
# Statistics
# ===================================================================

async def get_auto_validation_stats(db: AsyncSession) -> Dict[str, int]:
    pending = await db.scalar(
        select(func.count(VendorProduct.id)).where(
            VendorProduct.is_deleted == False,
            VendorProduct.is_validated == False,
        )
    )
    rows = await db.execute(
        select(VendorProduct.validator_kind, func.count(VendorProduct.id))
        .where(
            VendorProduct.is_deleted == False,
            VendorProduct.is_validated == True,
            VendorProduct.validator_kind.isnot(None),
        )
        .group_by(VendorProduct.validator_kind)
    )
    counts = {kind: count for kind, count in rows.all()}
    auto_validated = counts.get(ValidatorKind.SYSTEM, 0)
    manual_validated = counts.get(ValidatorKind.ADMIN, 0)
    return {
        "autoValidated": auto_validated,
        "manualValidated": manual_validated,
        "pending": pending or 0,
        "totalValidated": auto_validated + manual_validated,
    }
