from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import Optional

from fulfillment.models.customer import Customer
from fulfillment.schemas.customer import CustomerCreate, CustomerUpdate
from fulfillment.services.exceptions import ConstraintViolationError


class CustomerService:
    """Customer identity records. Renames never touch sales history."""

    def __init__(self, db: Session):
        self.db = db

    def create(self, data: CustomerCreate) -> Customer:
        """
        Create a customer.

        Raises:
            ConstraintViolationError: If the email is already registered
        """
        customer = Customer(
            name=data.name,
            email=data.email,
            password_hash=data.password_hash,
        )
        self.db.add(customer)
        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConstraintViolationError(f"Email {data.email} is already registered") from e
        self.db.refresh(customer)
        return customer

    def get(self, customer_id: int) -> Optional[Customer]:
        return self.db.query(Customer).filter(Customer.id == customer_id).first()

    def update(self, customer_id: int, data: CustomerUpdate) -> Optional[Customer]:
        customer = self.get(customer_id)
        if not customer:
            return None

        for field, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(customer, field, value)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise ConstraintViolationError("Email is already registered") from e
        self.db.refresh(customer)
        return customer
