from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
Id = BigInteger().with_variant(Integer(), 'sqlite')


class Base(DeclarativeBase):
    pass


def _enum(enum_cls: type[Enum], name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, values_callable=lambda members: [member.value for member in members])


class PrincipalRole(str, Enum):
    ADMIN = 'ADMIN'
    USER = 'USER'


class JobStatus(str, Enum):
    PENDING = 'pending'
    PROCESSING = 'processing'
    COMPLETED = 'completed'


class SourceType(str, Enum):
    INTERNAL = 'internal'
    EXTERNAL = 'external'


class MissingReason(str, Enum):
    BUY_FROM_SOURCE = 'buy_from_source'
    BUY_LATER = 'buy_later'


class Principal(Base):
    __tablename__ = 'principals'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    full_name: Mapped[str | None] = mapped_column(Text)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[PrincipalRole] = mapped_column(SQLEnum(PrincipalRole, name='principal_role'), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Source(Base):
    __tablename__ = 'sources'
    __table_args__ = (
        UniqueConstraint('name', name='sources_name_key'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color_code: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[SourceType] = mapped_column(_enum(SourceType, 'source_type'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class Product(Base):
    __tablename__ = 'products'
    __table_args__ = (
        UniqueConstraint('barcode', name='products_barcode_key'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    barcode: Mapped[str | None] = mapped_column(String(100))
    current_stock: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default='0')
    unit: Mapped[str | None] = mapped_column(String(20))
    brand: Mapped[str | None] = mapped_column(String(100))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobList(Base):
    __tablename__ = 'job_lists'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[JobStatus] = mapped_column(
        _enum(JobStatus, 'job_status'), nullable=False, default=JobStatus.PENDING, server_default='pending'
    )
    created_by_principal_id: Mapped[int] = mapped_column(Id, ForeignKey('principals.id'), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobItem(Base):
    __tablename__ = 'job_items'
    __table_args__ = (
        CheckConstraint('quantity >= 1', name='job_items_quantity_positive_ck'),
        CheckConstraint(
            '(product_id IS NOT NULL AND custom_name IS NULL) OR (product_id IS NULL AND custom_name IS NOT NULL)',
            name='job_items_product_or_name_ck',
        ),
        Index('job_items_job_list_id_idx', 'job_list_id'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    job_list_id: Mapped[int] = mapped_column(Id, ForeignKey('job_lists.id', ondelete='CASCADE'), nullable=False)
    product_id: Mapped[int | None] = mapped_column(Id, ForeignKey('products.id'))
    custom_name: Mapped[str | None] = mapped_column(String(255))
    source_id: Mapped[int] = mapped_column(Id, ForeignKey('sources.id'), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default='1')
    unit: Mapped[str | None] = mapped_column(String(50))
    quantity_found: Mapped[int | None] = mapped_column(Integer)
    quantity_missing: Mapped[int | None] = mapped_column(Integer)
    missing_source: Mapped[str | None] = mapped_column(String(255))
    missing_reason: Mapped[MissingReason | None] = mapped_column(_enum(MissingReason, 'missing_reason'))
    is_checked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    checked_by_principal_id: Mapped[int | None] = mapped_column(Id, ForeignKey('principals.id'))
    checked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class JobItemDeletion(Base):
    __tablename__ = 'job_item_deletions'
    __table_args__ = (
        Index('job_item_deletions_job_list_id_idx', 'job_list_id'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    # No foreign key: the log outlives both the item and the job list.
    job_list_id: Mapped[int] = mapped_column(Id, nullable=False)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    source_name: Mapped[str | None] = mapped_column(String(255))
    deleted_by_principal_id: Mapped[int] = mapped_column(Id, ForeignKey('principals.id'), nullable=False)
    deleted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    reason: Mapped[str | None] = mapped_column(Text)


class JobView(Base):
    __tablename__ = 'job_views'
    __table_args__ = (
        Index('job_views_job_principal_idx', 'job_list_id', 'principal_id', 'viewed_at'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    job_list_id: Mapped[int] = mapped_column(Id, ForeignKey('job_lists.id', ondelete='CASCADE'), nullable=False)
    principal_id: Mapped[int] = mapped_column(Id, ForeignKey('principals.id'), nullable=False)
    viewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    attempted_username: Mapped[str] = mapped_column(String(100), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    principal_id: Mapped[int | None] = mapped_column(Id, ForeignKey('principals.id'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    actor_principal_id: Mapped[int | None] = mapped_column(Id, ForeignKey('principals.id'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    job_list_id: Mapped[int | None] = mapped_column(Id)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())


class WebSession(Base):
    __tablename__ = 'web_sessions'
    __table_args__ = (
        UniqueConstraint('session_token', name='web_sessions_session_token_key'),
    )

    id: Mapped[int] = mapped_column(Id, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False)
    principal_id: Mapped[int] = mapped_column(Id, ForeignKey('principals.id'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
