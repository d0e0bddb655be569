# links.py
"""
Design ↔ vendor product association maintenance.

`DesignProductLink` is the durable association the cascade resolves through
first. The routines here create links idempotently and backfill the older
representations (direct `design_id`, legacy design image url) into it.
"""

import logging
from typing import Dict

from sqlalchemy import select, delete, exists, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models import Design, DesignProductLink, VendorProduct

logger = logging.getLogger(__name__)


async def create_link(db: AsyncSession, design_id: int, vendor_product_id: int) -> bool:
    """
    Inserts the (design, product) link inside a savepoint.

    Returns False when the link already exists, including when a concurrent
    writer inserted it first and the unique constraint fired. Does not commit.
    """
    existing = await db.scalar(
        select(DesignProductLink.id).where(
            DesignProductLink.design_id == design_id,
            DesignProductLink.vendor_product_id == vendor_product_id,
        )
    )
    if existing is not None:
        return False

    try:
        async with db.begin_nested():
            db.add(DesignProductLink(design_id=design_id, vendor_product_id=vendor_product_id))
    except IntegrityError:
        logger.info(f"🔗 Link already exists: design {design_id} ↔ product {vendor_product_id}")
        return False

    logger.info(f"🔗 Link created: design {design_id} ↔ product {vendor_product_id}")
    return True


async def migrate_existing_links(db: AsyncSession) -> Dict[str, int]:
    """
    Links every product that only knows its design through the legacy image
    url: finds the vendor's design with that exact url, backfills
    `design_id` and inserts the link row.
    """
    query = select(VendorProduct).where(
        VendorProduct.design_image_url.isnot(None),
        VendorProduct.design_id.is_(None),
    ).order_by(VendorProduct.id)
    products = (await db.execute(query)).scalars().all()
    logger.info(f"📋 Products to migrate: {len(products)}")

    created = 0
    errors = 0
    for product in products:
        design = await db.scalar(
            select(Design).where(
                Design.image_url == product.design_image_url,
                Design.vendor_id == product.vendor_id,
                Design.is_deleted == False,
            ).order_by(Design.id)
        )
        if design is None:
            logger.warning(f"⚠️ No design found for product {product.id} url {product.design_image_url}")
            errors += 1
            continue

        product.design_id = design.id
        await create_link(db, design.id, product.id)
        created += 1

    await db.commit()
    logger.info(f"🎉 Link migration finished: {created} created, {errors} errors")
    return {"created": created, "errors": errors}


async def verify_and_repair_links(db: AsyncSession) -> Dict[str, int]:
    """Inserts the missing link row for products that carry a `design_id`."""
    has_link = exists().where(
        DesignProductLink.vendor_product_id == VendorProduct.id,
        DesignProductLink.design_id == VendorProduct.design_id,
    )
    query = select(VendorProduct).where(
        VendorProduct.design_id.isnot(None),
        ~has_link,
    ).order_by(VendorProduct.id)
    products = (await db.execute(query)).scalars().all()
    logger.info(f"🔧 Products to repair: {len(products)}")

    repaired = 0
    errors = 0
    for product in products:
        if await create_link(db, product.design_id, product.id):
            repaired += 1
        else:
            errors += 1

    await db.commit()
    logger.info(f"🎉 Link repair finished: {repaired} repaired, {errors} errors")
    return {"repaired": repaired, "errors": errors}


async def cleanup_orphaned_links(db: AsyncSession) -> Dict[str, int]:
    """Deletes links whose design or product is missing or soft-deleted."""
    live_designs = select(Design.id).where(Design.is_deleted == False)
    live_products = select(VendorProduct.id).where(VendorProduct.is_deleted == False)
    result = await db.execute(
        delete(DesignProductLink).where(
            or_(
                ~DesignProductLink.design_id.in_(live_designs),
                ~DesignProductLink.vendor_product_id.in_(live_products),
            )
        ).execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info(f"🧹 Orphaned links deleted: {result.rowcount}")
    return {"deleted": result.rowcount}


async def get_link_stats(db: AsyncSession) -> Dict[str, int]:
    total_links = await db.scalar(select(func.count(DesignProductLink.id)))
    unique_designs = await db.scalar(select(func.count(func.distinct(DesignProductLink.design_id))))
    unique_products = await db.scalar(select(func.count(func.distinct(DesignProductLink.vendor_product_id))))
    with_design_id = await db.scalar(
        select(func.count(VendorProduct.id)).where(VendorProduct.design_id.isnot(None))
    )
    url_only = await db.scalar(
        select(func.count(VendorProduct.id)).where(
            VendorProduct.design_image_url.isnot(None),
            VendorProduct.design_id.is_(None),
        )
    )
    return {
        "totalLinks": total_links or 0,
        "uniqueDesigns": unique_designs or 0,
        "uniqueProducts": unique_products or 0,
        "productsWithDesignId": with_design_id or 0,
        "productsWithUrlOnly": url_only or 0,
    }
