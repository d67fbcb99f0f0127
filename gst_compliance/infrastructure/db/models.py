import uuid

from sqlalchemy import Column, DateTime, Integer, String, text
from sqlalchemy.dialects.postgresql import UUID

from gst_compliance.infrastructure.db.base import Base


class NumberSequence(Base):
    """One counter row per (document family, period), e.g. ``dc_2501``."""

    __tablename__ = "number_sequences"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(String(40), unique=True, nullable=False, index=True)
    prefix = Column(String(10), nullable=False)
    current_value = Column(Integer, nullable=False, default=0)
    padding = Column(Integer, nullable=False, default=4)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
        onupdate=text("CURRENT_TIMESTAMP"),
    )
