from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.crm.models import Base
from app.crm.utils import utcnow


class Customer(Base):
    __tablename__ = "customers"
    __table_args__ = (
        Index("idx_customers_status", "status"),
        Index("idx_customers_province", "province"),
        Index("idx_customers_created_at", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(
        ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True, unique=True
    )

    customer_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    account_number: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)

    # Personal
    title: Mapped[str | None] = mapped_column(Text, nullable=True)
    first_name: Mapped[str] = mapped_column(Text, nullable=False)
    last_name: Mapped[str] = mapped_column(Text, nullable=False)
    id_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    passport_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    date_of_birth: Mapped[date | None] = mapped_column(Date, nullable=True)
    nationality: Mapped[str] = mapped_column(Text, nullable=False, default="South African")

    # Contact
    email: Mapped[str | None] = mapped_column(String(320), nullable=True, unique=True)
    phone: Mapped[str | None] = mapped_column(Text, nullable=True)
    mobile: Mapped[str] = mapped_column(Text, nullable=False)
    whatsapp_number: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Address
    address_line1: Mapped[str | None] = mapped_column(Text, nullable=True)
    address_line2: Mapped[str | None] = mapped_column(Text, nullable=True)
    suburb: Mapped[str | None] = mapped_column(Text, nullable=True)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    province: Mapped[str] = mapped_column(Text, nullable=False)
    postal_code: Mapped[str] = mapped_column(Text, nullable=False)
    complex_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    unit_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    street_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    street_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Business
    company_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    company_registration_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    vat_number: Mapped[str | None] = mapped_column(Text, nullable=True)
    customer_type: Mapped[str] = mapped_column(String(32), nullable=False, default="residential")
    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    credit_limit: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_method: Mapped[str | None] = mapped_column(Text, nullable=True)
    banking_details: Mapped[str | None] = mapped_column(Text, nullable=True)
    contract_start_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    contract_end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    # Preferences
    preferred_language: Mapped[str] = mapped_column(String(32), nullable=False, default="english")
    communication_preference: Mapped[str] = mapped_column(String(32), nullable=False, default="sms")
    marketing_consent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=utcnow)
    created_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
    last_modified_by: Mapped[str | None] = mapped_column(String(36), nullable=True)
