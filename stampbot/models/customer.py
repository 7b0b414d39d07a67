from sqlalchemy import Column, Date, DateTime, Integer, Text

from stampbot.database import Base


class Customer(Base):
    __tablename__ = "customers"

    customer_id = Column(Text, primary_key=True)  # WhatsApp address (wa_id)
    wa_name = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_seen_at = Column(DateTime(timezone=True))
    number_of_visits = Column(Integer, nullable=False, default=0)
    last_visit_at = Column(DateTime(timezone=True))
    preferred_drink = Column(Text)
    birthday = Column(Date)
