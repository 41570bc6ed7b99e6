from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from fulfillment.database import Base


class Customer(Base):
    """
    Customer identity record.

    password_hash is produced by the external identity flow and stored as-is.
    """
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Customer(id={self.id}, email='{self.email}')>"
