"""Audit log model"""

import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.dialects.postgresql import UUID

from studio_booking.database import Base


class AuditLog(Base):
    """Audit trail for administrative availability changes"""
    __tablename__ = "audit_logs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Actor information
    actor_id = Column(String(64))  # Staff id from the admin token
    actor_type = Column(String(50))  # admin, staff, system

    # Action details
    action = Column(String(100), nullable=False)  # block_slot, bulk_block, bulk_unblock, update_settings
    entity_type = Column(String(50))  # availability_slot, booking_settings

    # Change data
    old_data = Column(JSON)
    new_data = Column(JSON)

    created_at = Column(DateTime, default=datetime.utcnow)
