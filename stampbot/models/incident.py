from sqlalchemy import Column, DateTime, Integer, Text

from stampbot.database import Base


class IncidentReport(Base):
    __tablename__ = "incident_reports"

    id = Column(Integer, primary_key=True, autoincrement=True)
    reference = Column(Text, nullable=False, unique=True)
    customer_id = Column(Text, nullable=False, index=True)
    category = Column(Text, nullable=False)
    description = Column(Text)
    photo_url = Column(Text)
    status = Column(Text, nullable=False)  # awaiting_media, submitted
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True))
