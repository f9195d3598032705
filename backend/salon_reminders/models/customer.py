"""
Модель клиента
"""
from sqlalchemy import Column, Integer, String, Text, TIMESTAMP
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from ..database import Base


class Customer(Base):
    """Клиент салона"""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(100), nullable=False)
    phone_number = Column(String(20), nullable=False, index=True)
    email = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)  # общие предпочтения
    created_at = Column(TIMESTAMP, server_default=func.now())

    appointments = relationship("Appointment", back_populates="customer")

    def __repr__(self):
        return f"<Customer {self.full_name} ({self.phone_number})>"
