from sqlalchemy import Column, Integer, String, ForeignKey, Text, Boolean, Numeric, TIMESTAMP, UniqueConstraint
from sqlalchemy.orm import relationship
from app.database.database import Base
from datetime import datetime

class Company(Base):
    __tablename__ = "companies"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), unique=True, index=True, nullable=False)
    country = Column(String(255), nullable=False)
    currency_code = Column(String(3), nullable=False, default="USD")

    # Expense policy settings
    max_expense_amount = Column(Numeric(12, 2), nullable=False, default=10000)
    require_receipts = Column(Boolean, nullable=False, default=True)
    receipt_min_amount = Column(Numeric(12, 2), nullable=False, default=25)

    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)

    users = relationship("User", back_populates="company", cascade="all, delete-orphan")
    categories = relationship("ExpenseCategory", back_populates="company", cascade="all, delete-orphan")


class ExpenseCategory(Base):
    __tablename__ = "expense_categories"
    __table_args__ = (UniqueConstraint("company_id", "name", name="uq_expense_category_company_name"),)

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(50), nullable=False)

    company = relationship("Company", back_populates="categories")


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    company_id = Column(Integer, ForeignKey("companies.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(Text, nullable=False)
    role = Column(String(50), nullable=False, default="EMPLOYEE")
    manager_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    department = Column(String(100), nullable=True)
    created_at = Column(TIMESTAMP, default=datetime.utcnow)
    updated_at = Column(TIMESTAMP, nullable=True)

    manager = relationship("User", remote_side=[id])
    company = relationship("Company", back_populates="users")
