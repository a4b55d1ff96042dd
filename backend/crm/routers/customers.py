from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from crm.auth import get_current_user_id
from crm.database import get_db
from crm.exceptions import CRMError
from crm.routers.errors import to_http_exception
from crm.schemas.customer import CustomerCreate, CustomerResponse, CustomerUpdate
from crm.services.customer_service import customer_service

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("", response_model=List[CustomerResponse])
def list_customers(
    search: Optional[str] = Query(None, description="Match on name or email"),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """List customers, newest first"""
    return customer_service.list_customers(db, user_id, search=search, skip=skip, limit=limit)


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(customer_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return customer_service.get_customer(db, user_id, customer_id)
    except CRMError as e:
        raise to_http_exception(e)


@router.post("", response_model=CustomerResponse, status_code=201)
def create_customer(customer: CustomerCreate, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return customer_service.create_customer(db, user_id, customer)
    except CRMError as e:
        raise to_http_exception(e)


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: UUID,
    update: CustomerUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        return customer_service.update_customer(db, user_id, customer_id, update)
    except CRMError as e:
        raise to_http_exception(e)


@router.delete("/{customer_id}", status_code=204)
def delete_customer(customer_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        customer_service.delete_customer(db, user_id, customer_id)
    except CRMError as e:
        raise to_http_exception(e)
    return Response(status_code=204)
