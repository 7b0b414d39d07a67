from sqlalchemy import Column, DateTime, Text

from stampbot.database import Base


class ProcessedMessage(Base):
    __tablename__ = "processed_messages"

    message_id = Column(Text, primary_key=True)
    processed_at = Column(DateTime(timezone=True), nullable=False, index=True)
