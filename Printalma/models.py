# models.py
"""
Database models for Printalma.

This file defines all SQLAlchemy models used by the application,
providing a single source of truth for the database schema.
"""

import enum
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import (
    Column, String, Boolean, DateTime, Text, Integer, Float, Enum, ForeignKey,
    UniqueConstraint, func
)
from sqlalchemy.orm import relationship

from db import Base


# -----------------------
# Enums
# -----------------------
class UserRole(str, enum.Enum):
    VENDOR = "VENDOR"
    ADMIN = "ADMIN"
    SUPERADMIN = "SUPERADMIN"


class VendorProductStatus(str, enum.Enum):
    PENDING = "PENDING"
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"


class PostValidationAction(str, enum.Enum):
    AUTO_PUBLISH = "AUTO_PUBLISH"
    TO_DRAFT = "TO_DRAFT"


class ValidationAction(str, enum.Enum):
    VALIDATE = "VALIDATE"
    REJECT = "REJECT"


class DesignValidationState(str, enum.Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


class ValidatorKind(str, enum.Enum):
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


ADMIN_ROLES = (UserRole.ADMIN, UserRole.SUPERADMIN)


@dataclass(frozen=True)
class Validator:
    """Who validated a vendor product: a specific admin, or the system itself."""
    kind: ValidatorKind
    admin_id: Optional[int] = None

    @classmethod
    def admin(cls, admin_id: int) -> "Validator":
        return cls(ValidatorKind.ADMIN, admin_id)

    @property
    def is_system(self) -> bool:
        return self.kind == ValidatorKind.SYSTEM


Validator.SYSTEM = Validator(ValidatorKind.SYSTEM)


# -----------------------
# Models
# -----------------------
class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), unique=True, nullable=False, index=True)
    first_name = Column(String(120), nullable=False, default="")
    last_name = Column(String(120), nullable=False, default="")
    role = Column(Enum(UserRole, name="user_role"), nullable=False, default=UserRole.VENDOR)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    designs = relationship("Design", back_populates="vendor", foreign_keys="Design.vendor_id")
    vendor_products = relationship("VendorProduct", back_populates="vendor", foreign_keys="VendorProduct.vendor_id")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class BaseProduct(Base):
    """A catalog product owned by the admins, which vendors decorate with designs."""
    __tablename__ = "base_products"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Design(Base):
    __tablename__ = "designs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    image_url = Column(String(1024), nullable=False, index=True)
    price = Column(Float, nullable=False, default=0.0)

    # Validation state (see `validation_state`)
    is_validated = Column(Boolean, nullable=False, default=False)
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validated_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # Workflow flags
    is_pending = Column(Boolean, nullable=False, default=False)
    is_draft = Column(Boolean, nullable=False, default=True)
    is_published = Column(Boolean, nullable=False, default=False)
    published_at = Column(DateTime(timezone=True), nullable=True)
    submitted_for_validation_at = Column(DateTime(timezone=True), nullable=True)
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    vendor = relationship("User", back_populates="designs", foreign_keys=[vendor_id])
    validator = relationship("User", foreign_keys=[validated_by])
    links = relationship("DesignProductLink", back_populates="design", cascade="all, delete-orphan")

    @property
    def validation_state(self) -> DesignValidationState:
        """
        Derives the validation state from the stored fields.

        Raises ValueError for field combinations that match none of the
        three states.
        """
        if self.is_validated:
            if self.validated_at is None or self.rejection_reason:
                raise ValueError(f"Design {self.id} has an inconsistent validated state")
            return DesignValidationState.VALIDATED
        if self.validated_at is None and not self.rejection_reason:
            return DesignValidationState.PENDING
        if self.validated_at is not None and self.rejection_reason:
            return DesignValidationState.REJECTED
        raise ValueError(f"Design {self.id} has an inconsistent validation state")


class VendorProduct(Base):
    __tablename__ = "vendor_products"
    id = Column(Integer, primary_key=True, autoincrement=True)
    vendor_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    base_product_id = Column(Integer, ForeignKey("base_products.id"), nullable=False)
    design_id = Column(Integer, ForeignKey("designs.id"), nullable=True, index=True)
    design_image_url = Column(String(1024), nullable=True)  # legacy link to a design, by url
    name = Column(String(255), nullable=False)
    price = Column(Float, nullable=False, default=0.0)

    status = Column(
        Enum(VendorProductStatus, name="vendor_product_status"),
        nullable=False, default=VendorProductStatus.PENDING, index=True,
    )
    is_validated = Column(Boolean, nullable=False, default=False)
    post_validation_action = Column(
        Enum(PostValidationAction, name="post_validation_action"),
        nullable=True, default=PostValidationAction.TO_DRAFT,
    )
    validated_at = Column(DateTime(timezone=True), nullable=True)
    validator_kind = Column(Enum(ValidatorKind, name="validator_kind"), nullable=True)
    validated_by = Column(Integer, ForeignKey("users.id"), nullable=True)  # null when validator_kind is SYSTEM
    is_deleted = Column(Boolean, nullable=False, default=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    vendor = relationship("User", back_populates="vendor_products", foreign_keys=[vendor_id])
    base_product = relationship("BaseProduct")
    design = relationship("Design")
    links = relationship("DesignProductLink", back_populates="vendor_product", cascade="all, delete-orphan")

    @property
    def is_eligible(self) -> bool:
        """Awaiting cascade processing."""
        return (
            self.status == VendorProductStatus.PENDING
            and not self.is_validated
            and not self.is_deleted
        )

    @property
    def validator(self) -> Optional[Validator]:
        if self.validator_kind is None:
            return None
        if self.validator_kind == ValidatorKind.SYSTEM:
            return Validator.SYSTEM
        return Validator.admin(self.validated_by)


class DesignProductLink(Base):
    __tablename__ = "design_product_links"
    __table_args__ = (
        UniqueConstraint("design_id", "vendor_product_id", name="uq_design_product_link"),
    )
    id = Column(Integer, primary_key=True, autoincrement=True)
    design_id = Column(Integer, ForeignKey("designs.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_product_id = Column(Integer, ForeignKey("vendor_products.id", ondelete="CASCADE"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    design = relationship("Design", back_populates="links")
    vendor_product = relationship("VendorProduct", back_populates="links")
