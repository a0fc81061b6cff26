import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, UniqueConstraint
from ..database import Base


class Availability(Base):
    """Dates a staff member can work a given show. One record per staff + show."""
    __tablename__ = "availability"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    staff_id = Column(String(36), nullable=False, index=True)
    staff_name = Column(String(200), nullable=True)
    show_id = Column(String(36), nullable=False, index=True)
    available_dates = Column(JSON, default=list)  # ["2024-06-01", ...]

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("staff_id", "show_id", name="uq_availability_staff_show"),
    )

    def __repr__(self):
        return f"<Availability staff={self.staff_id} show={self.show_id}>"
