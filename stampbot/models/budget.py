from sqlalchemy import Column, Date, DateTime, Integer, Numeric, Text

from stampbot.database import Base


class Budget(Base):
    __tablename__ = "budgets"

    customer_id = Column(Text, primary_key=True)
    month = Column(Text, primary_key=True)  # YYYY-MM
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class Expense(Base):
    __tablename__ = "expenses"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Text, nullable=False, index=True)
    amount = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    category = Column(Text, nullable=False)
    spent_on = Column(Date, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
