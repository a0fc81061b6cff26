import uuid
from datetime import datetime
from sqlalchemy import Column, String, DateTime, JSON, Index
from ..database import Base


class Client(Base):
    """Exhibitor company that books staff. Contacts and locations are nested arrays."""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    email = Column(String(255), nullable=False, unique=True, index=True)
    hashed_password = Column(String(255), nullable=True)

    # Company profile
    name = Column(String(200), nullable=False, default="")
    category = Column(String(100), default="")
    location = Column(String(255), default="")
    phone = Column(String(30), default="")
    website = Column(String(255), default="")
    logo_url = Column(String(500), nullable=True)

    # [{id, name, email, phone, role}]
    contacts = Column(JSON, default=list)
    # [{id, name, address, city, state, zip}]
    locations = Column(JSON, default=list)

    # Payment gateway customer, created on first booking
    stripe_customer_id = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("ix_client_stripe_customer", "stripe_customer_id"),
    )

    def find_contact(self, contact_id: str):
        return next((c for c in (self.contacts or []) if c.get("id") == contact_id), None)

    def find_location(self, location_id: str):
        return next((loc for loc in (self.locations or []) if loc.get("id") == location_id), None)

    def __repr__(self):
        return f"<Client {self.name} - {self.email}>"
