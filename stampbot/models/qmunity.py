from sqlalchemy import Boolean, Column, DateTime, Integer, Text

from stampbot.database import Base


class QmunityLocation(Base):
    __tablename__ = "qmunity_locations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(Text, nullable=False, unique=True)
    name = Column(Text, nullable=False)
    max_capacity = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)


class QmunityCheckin(Base):
    __tablename__ = "qmunity_checkins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, nullable=False, index=True)
    wa_from = Column(Text, nullable=False)
    queue_number = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)


class QmunitySpeedReport(Base):
    __tablename__ = "qmunity_speed_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, nullable=False, index=True)
    wa_from = Column(Text, nullable=False)
    speed = Column(Text, nullable=False)  # QUICKLY, MODERATELY, SLOW
    created_at = Column(DateTime(timezone=True), nullable=False)


class QmunityIssue(Base):
    __tablename__ = "qmunity_issues"

    id = Column(Integer, primary_key=True, autoincrement=True)
    location_id = Column(Integer, nullable=False, index=True)
    wa_from = Column(Text, nullable=False)
    message = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
