import uuid
from datetime import datetime
from sqlalchemy import Column, String, Date, DateTime
from ..database import Base


class Show(Base):
    """Trade show that clients book staff for."""
    __tablename__ = "shows"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(255), nullable=True)
    location = Column(String(255), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)

    def snapshot(self) -> dict:
        """Show fields copied onto intents and bookings at submission time."""
        return {
            "location": self.location,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
        }

    def __repr__(self):
        return f"<Show {self.name} {self.start_date}>"
