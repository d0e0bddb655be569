from datetime import datetime, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from auth import create_access_token
from db import Base, get_db
from errors import NotificationError
from mail import get_mailer
from models import (
    BaseProduct, Design, DesignProductLink, User, VendorProduct,
    PostValidationAction, UserRole, VendorProductStatus,
)


class RecordingMailer:
    """Stands in for the Brevo dispatcher and remembers every send."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.error = None

    async def send(self, to, subject, template, context):
        if self.fail:
            raise NotificationError("mail relay unavailable")
        if self.error is not None:
            raise self.error
        self.sent.append({"to": to, "subject": subject, "template": template, "context": dict(context)})

    @property
    def templates(self):
        return [message["template"] for message in self.sent]


class Factory:
    def __init__(self, db: AsyncSession):
        self.db = db
        self._emails = 0

    async def user(self, role=UserRole.VENDOR, first_name="Awa", last_name="Diop"):
        self._emails += 1
        user = User(
            email=f"{role.value.lower()}{self._emails}@printalma.test",
            first_name=first_name,
            last_name=last_name,
            role=role,
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def admin(self):
        return await self.user(role=UserRole.ADMIN, first_name="Moussa", last_name="Admin")

    async def base_product(self, name="Classic T-Shirt"):
        product = BaseProduct(name=name, price=5000.0)
        self.db.add(product)
        await self.db.commit()
        await self.db.refresh(product)
        return product

    async def design(self, vendor, image_url="https://cdn.printalma.test/designs/lion.png",
                     state="pending", is_pending=True, name="Lion"):
        design = Design(
            vendor_id=vendor.id,
            name=name,
            image_url=image_url,
            is_pending=is_pending,
            is_draft=not is_pending,
        )
        if state == "validated":
            design.is_validated = True
            design.validated_at = datetime.now(timezone.utc)
            design.is_pending = False
            design.is_published = True
        elif state == "rejected":
            design.validated_at = datetime.now(timezone.utc)
            design.rejection_reason = "Low resolution"
            design.is_pending = False
        self.db.add(design)
        await self.db.commit()
        await self.db.refresh(design)
        return design

    async def vendor_product(self, vendor, base_product, design=None, design_image_url=None,
                             action=PostValidationAction.TO_DRAFT, status=VendorProductStatus.PENDING,
                             is_validated=False, set_design_id=True, link=True, name="Lion tee"):
        product = VendorProduct(
            vendor_id=vendor.id,
            base_product_id=base_product.id,
            design_id=design.id if (design is not None and set_design_id) else None,
            design_image_url=design_image_url,
            name=name,
            price=7500.0,
            status=status,
            is_validated=is_validated,
            post_validation_action=action,
        )
        self.db.add(product)
        await self.db.flush()
        if design is not None and link:
            self.db.add(DesignProductLink(design_id=design.id, vendor_product_id=product.id))
        await self.db.commit()
        await self.db.refresh(product)
        return product


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'printalma.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_maker):
    async with session_maker() as session:
        yield session


@pytest.fixture
def make(db):
    return Factory(db)


@pytest.fixture
def mailer():
    return RecordingMailer()


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token({'user_id': user.id})}"}
    return _headers


@pytest_asyncio.fixture
async def client(session_maker, mailer):
    from server import app

    async def _get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as http:
        yield http
    app.dependency_overrides.clear()
