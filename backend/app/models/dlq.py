"""
Dead Letter Queue (DLQ) Model.

Holds working sessions the auto-closer could not close. One FAILED row per
session; a later run that closes the session marks it PROCESSED.
"""

from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
import enum


class DLQStatus(str, enum.Enum):
    FAILED = "FAILED"  # Waiting for the next run
    PROCESSED = "PROCESSED"  # Closed by a later run


class DeadLetterQueue(Base):
    """
    Failed batch work items, keyed by task name and the id of the row
    the task was working on.
    """
    __tablename__ = "dead_letter_queue"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    task_name = Column(String(100), nullable=False, index=True)
    reference_id = Column(Integer, nullable=True, index=True)  # Working session id
    error_message = Column(Text, nullable=False)
    payload = Column(JSON, nullable=True)  # session_id, user_id

    status = Column(Enum(DLQStatus), default=DLQStatus.FAILED, nullable=False, index=True)
    retry_count = Column(Integer, default=0, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    last_retry_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("ix_dlq_task_reference_status", "task_name", "reference_id", "status"),
    )

    def __repr__(self):
        return f"<DLQ(id={self.id}, task='{self.task_name}', ref={self.reference_id}, status='{self.status}')>"
