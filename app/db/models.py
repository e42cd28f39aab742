import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ROLE_ROOT = "root"
ROLE_ADMIN = "admin"
ROLE_GESTOR = "gestor"
ROLE_USER = "user"
ROLES = {ROLE_ROOT, ROLE_ADMIN, ROLE_GESTOR, ROLE_USER}

QUOTATION_PENDING = "pending"
QUOTATION_APPROVED = "approved"
QUOTATION_REJECTED = "rejected"
QUOTATION_STATUSES = {QUOTATION_PENDING, QUOTATION_APPROVED, QUOTATION_REJECTED}

NOTIFICATION_NEW_QUOTATION = "new_quotation"
NOTIFICATION_STATUS_UPDATED = "status_updated"
NOTIFICATION_SENT = "sent"
NOTIFICATION_PENDING = "pending"
NOTIFICATION_FAILED = "failed"

ACCESS_SUCCESS = "success"
ACCESS_FAILURE = "failure"


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=False)
    tax_id = Column(String(18), nullable=False, unique=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    users = relationship("User", back_populates="tenant", cascade="all, delete-orphan")
    quotations = relationship("Quotation", back_populates="tenant", cascade="all, delete-orphan")
    access_logs = relationship("AccessLog", back_populates="tenant", cascade="all, delete-orphan")
    notifications = relationship("Notification", back_populates="tenant", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    last_login_at = Column(DateTime, nullable=True)

    tenant = relationship("Tenant", back_populates="users")
    quotations = relationship("Quotation", back_populates="user", cascade="all, delete-orphan")
    access_logs = relationship("AccessLog", back_populates="user", cascade="all, delete-orphan")

    @property
    def is_root(self) -> bool:
        return self.role == ROLE_ROOT


class Quotation(Base):
    __tablename__ = "quotations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(String(50), nullable=False, default=QUOTATION_PENDING)
    average_market_price = Column(Numeric(10, 2), nullable=True)
    price_range_min = Column(Numeric(10, 2), nullable=True)
    price_range_max = Column(Numeric(10, 2), nullable=True)
    market_analysis = Column(Text, nullable=True)
    recommendations = Column(JSON, nullable=True)
    analysis_confidence = Column(Numeric(3, 2), nullable=True)
    price_report = Column(Text, nullable=True)
    webhook_sent = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    tenant = relationship("Tenant", back_populates="quotations")
    user = relationship("User", back_populates="quotations")
    notifications = relationship("Notification", back_populates="quotation", cascade="all, delete-orphan")


class AccessLog(Base):
    __tablename__ = "access_logs"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True)
    endpoint = Column(String(255), nullable=False)
    http_method = Column(String(10), nullable=False)
    client_ip = Column(String(45), nullable=False)
    status = Column(String(50), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="access_logs")
    tenant = relationship("Tenant", back_populates="access_logs")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    quotation_id = Column(String, ForeignKey("quotations.id", ondelete="CASCADE"), nullable=True)
    tenant_id = Column(String, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=True)
    type = Column(String(100), nullable=False)
    recipient = Column(String(255), nullable=False)
    status = Column(String(50), nullable=False, default=NOTIFICATION_PENDING)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False)

    quotation = relationship("Quotation", back_populates="notifications")
    tenant = relationship("Tenant", back_populates="notifications")
