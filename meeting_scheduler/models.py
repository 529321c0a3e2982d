import uuid

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    firebase_uid = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(255), nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    email_verified = Column(Boolean, default=False, nullable=False)
    # Notification preferences
    notify_new_bookings = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    availability_rules = relationship(
        "WeeklyAvailabilityRule", back_populates="owner", cascade="all, delete-orphan"
    )
    event_types = relationship("EventType", back_populates="owner", cascade="all, delete-orphan")
    scheduling_links = relationship(
        "SchedulingLink", back_populates="owner", cascade="all, delete-orphan"
    )
