from sqlalchemy import Column, DateTime, Integer, Text

from stampbot.database import Base, JSONType


class ConversationStateRow(Base):
    __tablename__ = "conversation_states"

    customer_id = Column(Text, primary_key=True)
    active_flow = Column(Text)  # null = idle
    step = Column(Integer, nullable=False, default=0)
    data = Column(JSONType, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True))
