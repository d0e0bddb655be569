import pytest
from sqlalchemy import func, select

from cascade import auto_validate_all_eligible_products
from designs import (
    CreateDesignRequest,
    create_design,
    delete_design,
    get_products_using_design,
    list_pending_designs,
    list_vendor_designs,
    submit_for_validation,
    validate_design,
)
from errors import ForbiddenError, InvalidStateError, NotFoundError
from models import (
    DesignProductLink,
    DesignValidationState, PostValidationAction, ValidationAction, ValidatorKind,
    VendorProductStatus,
)


@pytest.fixture
async def vendor(make):
    return await make.user()


@pytest.fixture
async def admin(make):
    return await make.admin()


@pytest.fixture
async def base(make):
    return await make.base_product()


async def test_validating_design_publishes_auto_publish_product(db, make, vendor, admin, base, mailer):
    d1 = await make.design(vendor)
    p1 = await make.vendor_product(vendor, base, design=d1, action=PostValidationAction.AUTO_PUBLISH)

    design, cascade = await validate_design(db, d1.id, admin, ValidationAction.VALIDATE, None, mailer)

    assert design.validation_state == DesignValidationState.VALIDATED
    assert design.is_published is True
    assert design.validated_by == admin.id
    await db.refresh(p1)
    assert p1.status == VendorProductStatus.PUBLISHED
    assert p1.is_validated is True
    assert p1.validator_kind == ValidatorKind.ADMIN
    assert p1.validated_by == admin.id
    assert cascade.updated_ids == [p1.id]
    assert "vendor-product-auto-published" in mailer.templates
    assert "design-approved" in mailer.templates


async def test_rejecting_design_requires_reason(db, make, vendor, admin, mailer):
    design = await make.design(vendor)

    with pytest.raises(InvalidStateError):
        await validate_design(db, design.id, admin, ValidationAction.REJECT, "   ", mailer)

    await db.refresh(design)
    assert design.validation_state == DesignValidationState.PENDING


async def test_rejecting_design_leaves_products_pending(db, make, vendor, admin, base, mailer):
    design = await make.design(vendor)
    product = await make.vendor_product(vendor, base, design=design, action=PostValidationAction.AUTO_PUBLISH)

    rejected, cascade = await validate_design(
        db, design.id, admin, ValidationAction.REJECT, "Image is blurry", mailer
    )

    assert cascade is None
    assert rejected.validation_state == DesignValidationState.REJECTED
    assert rejected.rejection_reason == "Image is blurry"
    assert rejected.is_validated is False
    await db.refresh(product)
    assert product.status == VendorProductStatus.PENDING
    assert product.is_validated is False
    assert mailer.templates == ["design-rejected"]
    assert mailer.sent[0]["context"]["rejectionReason"] == "Image is blurry"


async def test_design_can_only_be_decided_once(db, make, vendor, admin, mailer):
    design = await make.design(vendor, state="validated")

    with pytest.raises(InvalidStateError):
        await validate_design(db, design.id, admin, ValidationAction.REJECT, "Changed my mind", mailer)


async def test_only_admins_validate_designs(db, make, vendor, mailer):
    design = await make.design(vendor)

    with pytest.raises(ForbiddenError):
        await validate_design(db, design.id, vendor, ValidationAction.VALIDATE, None, mailer)


async def test_validate_unknown_design_is_not_found(db, admin, mailer):
    with pytest.raises(NotFoundError):
        await validate_design(db, 12345, admin, ValidationAction.VALIDATE, None, mailer)


async def test_decision_survives_mail_outage(db, make, vendor, admin, base, mailer):
    mailer.fail = True
    design = await make.design(vendor)
    product = await make.vendor_product(vendor, base, design=design)

    validated, cascade = await validate_design(db, design.id, admin, ValidationAction.VALIDATE, None, mailer)

    assert validated.validation_state == DesignValidationState.VALIDATED
    assert cascade.updated_ids == [product.id]


async def test_decision_survives_unexpected_mailer_error(db, make, vendor, admin, base, mailer):
    mailer.error = RuntimeError("dispatcher crashed")
    design = await make.design(vendor)
    first = await make.vendor_product(vendor, base, design=design)
    second = await make.vendor_product(vendor, base, design=design, name="Lion mug")

    validated, cascade = await validate_design(db, design.id, admin, ValidationAction.VALIDATE, None, mailer)

    assert validated.validation_state == DesignValidationState.VALIDATED
    assert cascade.updated_ids == [first.id, second.id]


async def test_submit_flow(db, make, vendor, admin, mailer):
    design = await create_design(
        db, vendor, CreateDesignRequest(name="Baobab", image_url="https://cdn.printalma.test/baobab.png")
    )
    assert design.is_draft is True
    assert design.is_pending is False

    submitted = await submit_for_validation(db, design.id, vendor, mailer)

    assert submitted.is_pending is True
    assert submitted.is_draft is False
    assert submitted.submitted_for_validation_at is not None
    assert mailer.sent[0]["to"] == admin.email
    assert mailer.templates == ["design-submission"]
    assert [d.id for d in await list_pending_designs(db, admin)] == [design.id]

    with pytest.raises(InvalidStateError):
        await submit_for_validation(db, design.id, vendor, mailer)


async def test_submit_rules(db, make, vendor, mailer):
    other = await make.user()
    draft = await make.design(vendor, is_pending=False)
    rejected = await make.design(vendor, state="rejected")
    validated = await make.design(vendor, state="validated")

    with pytest.raises(ForbiddenError):
        await submit_for_validation(db, draft.id, other, mailer)
    with pytest.raises(InvalidStateError):
        await submit_for_validation(db, rejected.id, vendor, mailer)
    with pytest.raises(InvalidStateError):
        await submit_for_validation(db, validated.id, vendor, mailer)


async def test_list_vendor_designs_by_state(db, make, vendor):
    pending = await make.design(vendor)
    rejected = await make.design(vendor, state="rejected")
    validated = await make.design(vendor, state="validated")

    assert [d.id for d in await list_vendor_designs(db, vendor, DesignValidationState.PENDING)] == [pending.id]
    assert [d.id for d in await list_vendor_designs(db, vendor, DesignValidationState.REJECTED)] == [rejected.id]
    assert [d.id for d in await list_vendor_designs(db, vendor, DesignValidationState.VALIDATED)] == [validated.id]
    assert len(await list_vendor_designs(db, vendor)) == 3


async def test_products_using_design_is_owner_only(db, make, vendor, admin, base):
    design = await make.design(vendor)
    product = await make.vendor_product(vendor, base, design=design)
    stranger = await make.user()

    assert [p.id for p in await get_products_using_design(db, design.id, vendor)] == [product.id]
    assert [p.id for p in await get_products_using_design(db, design.id, admin)] == [product.id]
    with pytest.raises(ForbiddenError):
        await get_products_using_design(db, design.id, stranger)


async def test_deleted_design_is_gone_and_unlinked(db, make, vendor, admin, base, mailer):
    design = await make.design(vendor, state="validated")
    product = await make.vendor_product(vendor, base, design=design)

    await delete_design(db, design.id, vendor)

    links = await db.scalar(select(func.count(DesignProductLink.id)))
    assert links == 0
    with pytest.raises(NotFoundError):
        await get_products_using_design(db, design.id, vendor)
    with pytest.raises(NotFoundError):
        await delete_design(db, design.id, vendor)

    result = await auto_validate_all_eligible_products(db, mailer)
    assert result.updated_ids == []
    await db.refresh(product)
    assert product.status == VendorProductStatus.PENDING


async def test_only_the_owner_deletes_a_design(db, make, vendor, admin):
    design = await make.design(vendor)
    stranger = await make.user(first_name="Other")

    with pytest.raises(ForbiddenError):
        await delete_design(db, design.id, stranger)

    await db.refresh(design)
    assert design.is_deleted is False
