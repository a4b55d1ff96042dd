from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from crm.auth import get_current_user_id
from crm.database import get_db
from crm.exceptions import CRMError
from crm.routers.errors import to_http_exception
from crm.schemas.inventory import (
    CategoryCreate,
    CategoryResponse,
    InventoryItemCreate,
    InventoryItemResponse,
    InventoryItemUpdate,
    InventorySummary,
)
from crm.services.inventory_service import inventory_service, to_item_response

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("/items", response_model=List[InventoryItemResponse])
def list_items(
    low_stock: bool = Query(False, description="Only items at or below their reorder point"),
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    items = inventory_service.list_items(db, user_id, low_stock_only=low_stock)
    return [to_item_response(item) for item in items]


@router.get("/summary", response_model=InventorySummary)
def get_summary(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return inventory_service.summary(db, user_id)


@router.post("/items", response_model=InventoryItemResponse, status_code=201)
def create_item(item: InventoryItemCreate, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    """Add a stock item; an unknown category name creates the category"""
    try:
        return to_item_response(inventory_service.create_item(db, user_id, item))
    except CRMError as e:
        raise to_http_exception(e)


@router.put("/items/{item_id}", response_model=InventoryItemResponse)
def update_item(
    item_id: UUID,
    update: InventoryItemUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        return to_item_response(inventory_service.update_item(db, user_id, item_id, update))
    except CRMError as e:
        raise to_http_exception(e)


@router.delete("/items/{item_id}", status_code=204)
def delete_item(item_id: UUID, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        inventory_service.delete_item(db, user_id, item_id)
    except CRMError as e:
        raise to_http_exception(e)
    return Response(status_code=204)


@router.get("/categories", response_model=List[CategoryResponse])
def list_categories(user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    return inventory_service.list_categories(db, user_id)


@router.post("/categories", response_model=CategoryResponse, status_code=201)
def create_category(category: CategoryCreate, user_id: UUID = Depends(get_current_user_id), db: Session = Depends(get_db)):
    try:
        return inventory_service.create_category(db, user_id, category)
    except CRMError as e:
        raise to_http_exception(e)


@router.put("/categories/{category_id}", response_model=CategoryResponse)
def rename_category(
    category_id: UUID,
    category: CategoryCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    try:
        return inventory_service.rename_category(db, user_id, category_id, category)
    except CRMError as e:
        raise to_http_exception(e)
