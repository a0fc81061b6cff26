import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime
from ..database import Base
import enum


class StaffRole(str, enum.Enum):
    STAFF = "staff"
    ADMIN = "admin"


class Staff(Base):
    __tablename__ = "staff"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(200), nullable=False, default="")
    image = Column(String(500), nullable=True)
    role = Column(String(20), default=StaffRole.STAFF.value, nullable=False)
    hashed_password = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def __repr__(self):
        return f"<Staff {self.name} ({self.role})>"
