from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None


class CategoryResponse(BaseModel):
    id: UUID
    name: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventoryItemCreate(BaseModel):
    sku: Optional[str] = None
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    category: Optional[str] = None  # Category name; created when it doesn't exist
    price: Decimal = Field(Decimal("0"), ge=0)
    stock_quantity: int = Field(0, ge=0)
    reorder_point: int = Field(10, ge=0)


class InventoryItemUpdate(BaseModel):
    sku: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    price: Optional[Decimal] = Field(None, ge=0)
    stock_quantity: Optional[int] = Field(None, ge=0)
    reorder_point: Optional[int] = Field(None, ge=0)


class InventoryItemResponse(BaseModel):
    id: UUID
    sku: Optional[str]
    name: str
    description: Optional[str]
    category_id: Optional[UUID]
    category_name: Optional[str] = None
    price: Decimal
    stock_quantity: int
    reorder_point: int
    is_low_stock: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class InventorySummary(BaseModel):
    total_items: int
    low_stock_count: int
    total_value: Decimal
    low_stock_items: List[InventoryItemResponse] = []
