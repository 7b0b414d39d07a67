from sqlalchemy import Column, Date, DateTime, Integer, Text

from stampbot.database import Base, JSONType


class WeeklyReflection(Base):
    __tablename__ = "weekly_reflections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Text, nullable=False, index=True)
    week_start = Column(Date, nullable=False)
    transcript = Column(Text, nullable=False)
    summary = Column(Text)
    highlights = Column(JSONType, nullable=False, default=list)
    mood = Column(Text)
    audio_url = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)


class DeadLetter(Base):
    __tablename__ = "dead_letters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    customer_id = Column(Text, index=True)
    source = Column(Text, nullable=False)
    payload = Column(JSONType, nullable=False, default=dict)
    error = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False)
