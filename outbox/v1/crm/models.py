"""
Read-only views of the CRM tables that outbox producers and handlers consult.

The rows are owned by the admin/CRM side of the application; the queue only
reads them.
"""

from datetime import date

from sqlalchemy import Date, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from outbox.infra.database import Base


class MarketingStatus:
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"
    PENDING = "pending"


class Company(Base):
    __tablename__ = "companies"

    company_id: Mapped[str] = mapped_column(Text, primary_key=True)
    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="customer|distributor|prospect"
    )
    last_invoice_at: Mapped[date | None] = mapped_column(Date, nullable=True)


class Contact(Base):
    __tablename__ = "contacts"

    contact_id: Mapped[str] = mapped_column(Text, primary_key=True)
    company_id: Mapped[str] = mapped_column(
        ForeignKey("companies.company_id", ondelete="CASCADE"), nullable=False
    )
    email: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    marketing_status: Mapped[str] = mapped_column(
        Text, nullable=False, default=MarketingStatus.PENDING
    )

    __table_args__ = (Index("ix_contacts_company_id", "company_id"),)
