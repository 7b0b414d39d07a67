from sqlalchemy import Boolean, Column, DateTime, Integer, Text

from stampbot.database import Base


class Visit(Base):
    __tablename__ = "visits"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Text, nullable=False, index=True)
    visited_at = Column(DateTime(timezone=True), nullable=False)
    simulated = Column(Boolean, nullable=False, default=False)  # demo streak visits


class SignupLead(Base):
    __tablename__ = "signup_leads"

    customer_id = Column(Text, primary_key=True)
    business_name = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class MeetingRequest(Base):
    __tablename__ = "meeting_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Text, nullable=False, index=True)
    service = Column(Text, nullable=False)
    email = Column(Text)
    status = Column(Text, nullable=False, default="requested")  # requested, link_sent
    created_at = Column(DateTime(timezone=True), nullable=False)
