import logging
import uuid
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crm.exceptions import InvalidTransitionError, NotFoundError, PersistenceError
from crm.models.customer import Customer
from crm.schemas.customer import CustomerCreate, CustomerUpdate

logger = logging.getLogger(__name__)


def generate_customer_number() -> str:
    return f"CUS-{uuid.uuid4().hex[:8].upper()}"


class CustomerService:
    """CRUD for a user's customers"""

    def list_customers(self, db: Session, user_id: UUID, search: Optional[str] = None, skip: int = 0, limit: int = 100) -> List[Customer]:
        query = db.query(Customer).filter(Customer.user_id == user_id)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Customer.first_name.ilike(pattern),
                Customer.last_name.ilike(pattern),
                Customer.email.ilike(pattern),
            ))
        return query.order_by(Customer.created_at.desc()).offset(skip).limit(limit).all()

    def get_customer(self, db: Session, user_id: UUID, customer_id: UUID) -> Customer:
        customer = db.query(Customer).filter(
            Customer.id == customer_id,
            Customer.user_id == user_id,
        ).first()
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    def create_customer(self, db: Session, user_id: UUID, data: CustomerCreate) -> Customer:
        customer = Customer(
            user_id=user_id,
            customer_number=generate_customer_number(),
            **data.model_dump(),
        )
        try:
            db.add(customer)
            db.commit()
            db.refresh(customer)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to create customer: {e}")
            raise PersistenceError("Failed to create customer. Please try again.")

        logger.info(f"Created customer {customer.customer_number}")
        return customer

    def update_customer(self, db: Session, user_id: UUID, customer_id: UUID, data: CustomerUpdate) -> Customer:
        customer = self.get_customer(db, user_id, customer_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(customer, field, value)
        try:
            db.commit()
            db.refresh(customer)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to update customer {customer_id}: {e}")
            raise PersistenceError("Failed to update customer. Please try again.")
        return customer

    def delete_customer(self, db: Session, user_id: UUID, customer_id: UUID) -> None:
        customer = self.get_customer(db, user_id, customer_id)
        if customer.invoices:
            raise InvalidTransitionError("Customer has invoices and cannot be deleted")
        try:
            db.delete(customer)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete customer {customer_id}: {e}")
            raise PersistenceError("Failed to delete customer. Please try again.")
        logger.info(f"Deleted customer {customer_id}")


customer_service = CustomerService()
