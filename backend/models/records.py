# backend/models/records.py
"""
SQLAlchemy tables for persisted workflow documents.

Each document is stored as its JSON payload plus the columns the
repositories filter on.
"""
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class DocumentRecord(Base):
    __tablename__ = "sales_documents"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    document_type = Column(String(20), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)
    contact_id = Column(Integer, index=True)
    origin_id = Column(Integer, index=True)
    created_at = Column(DateTime(timezone=True))
    payload = Column(Text, nullable=False)


class PaymentRecord(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(Integer, nullable=False, index=True)
    payload = Column(Text, nullable=False)


class SequenceRecord(Base):
    __tablename__ = "sequences"

    name = Column(String(50), primary_key=True)
    value = Column(Integer, nullable=False, default=1)
