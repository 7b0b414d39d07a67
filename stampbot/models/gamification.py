from sqlalchemy import Column, Date, DateTime, Integer, Text

from stampbot.database import Base, JSONType


class Streak(Base):
    __tablename__ = "streaks"

    customer_id = Column(Text, primary_key=True)
    kind = Column(Text, primary_key=True)  # visit, budget, on_track
    current_streak = Column(Integer, nullable=False, default=0)
    longest_streak = Column(Integer, nullable=False, default=0)
    last_activity_date = Column(Date)
    milestones_notified = Column(JSONType, nullable=False, default=list)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True))


class Badge(Base):
    __tablename__ = "badges"

    customer_id = Column(Text, primary_key=True)
    badge_code = Column(Text, primary_key=True)
    awarded_at = Column(DateTime(timezone=True), nullable=False)
