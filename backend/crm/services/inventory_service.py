import logging
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from crm.exceptions import NotFoundError, PersistenceError, ValidationError
from crm.models.inventory import InventoryCategory, InventoryItem
from crm.schemas.inventory import (
    CategoryCreate,
    InventoryItemCreate,
    InventoryItemResponse,
    InventoryItemUpdate,
    InventorySummary,
)
from crm.utils.money import ZERO, quantize_money

logger = logging.getLogger(__name__)


def to_item_response(item: InventoryItem) -> InventoryItemResponse:
    response = InventoryItemResponse.model_validate(item)
    response.category_name = item.category.name if item.category else None
    return response


class InventoryService:
    """Stock items and their categories"""

    # Categories

    def list_categories(self, db: Session, user_id: UUID) -> List[InventoryCategory]:
        return db.query(InventoryCategory).filter(
            InventoryCategory.user_id == user_id
        ).order_by(InventoryCategory.name).all()

    def create_category(self, db: Session, user_id: UUID, data: CategoryCreate) -> InventoryCategory:
        category = InventoryCategory(user_id=user_id, name=data.name.strip(), description=data.description)
        self._commit(db, category, "create category")
        return category

    def rename_category(self, db: Session, user_id: UUID, category_id: UUID, data: CategoryCreate) -> InventoryCategory:
        category = db.query(InventoryCategory).filter(
            InventoryCategory.id == category_id,
            InventoryCategory.user_id == user_id,
        ).first()
        if not category:
            raise NotFoundError("Category not found")
        category.name = data.name.strip()
        if data.description is not None:
            category.description = data.description
        self._commit(db, category, "update category")
        return category

    def get_or_create_category(self, db: Session, user_id: UUID, name: Optional[str]) -> Optional[InventoryCategory]:
        """Look a category up by name, creating it in the current transaction if needed"""
        if not name or not name.strip():
            return None
        name = name.strip()
        category = db.query(InventoryCategory).filter(
            InventoryCategory.user_id == user_id,
            InventoryCategory.name == name,
        ).first()
        if not category:
            category = InventoryCategory(user_id=user_id, name=name)
            db.add(category)
            db.flush()
            logger.info(f"Created inventory category '{name}'")
        return category

    # Items

    def list_items(self, db: Session, user_id: UUID, low_stock_only: bool = False) -> List[InventoryItem]:
        items = db.query(InventoryItem).options(joinedload(InventoryItem.category)).filter(
            InventoryItem.user_id == user_id
        ).order_by(InventoryItem.name).all()
        if low_stock_only:
            items = [item for item in items if item.is_low_stock]
        return items

    def get_item(self, db: Session, user_id: UUID, item_id: UUID) -> InventoryItem:
        item = db.query(InventoryItem).filter(
            InventoryItem.id == item_id,
            InventoryItem.user_id == user_id,
        ).first()
        if not item:
            raise NotFoundError("Inventory item not found")
        return item

    def create_item(self, db: Session, user_id: UUID, data: InventoryItemCreate) -> InventoryItem:
        try:
            category = self.get_or_create_category(db, user_id, data.category)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to resolve category '{data.category}': {e}")
            raise PersistenceError("Failed to add item. Please try again.")

        item = InventoryItem(
            user_id=user_id,
            sku=data.sku,
            name=data.name,
            description=data.description,
            category_id=category.id if category else None,
            price=quantize_money(data.price),
            stock_quantity=data.stock_quantity,
            reorder_point=data.reorder_point,
        )
        self._commit(db, item, "add item")
        logger.info(f"Added inventory item {item.name} (stock={item.stock_quantity})")
        return item

    def update_item(self, db: Session, user_id: UUID, item_id: UUID, data: InventoryItemUpdate) -> InventoryItem:
        item = self.get_item(db, user_id, item_id)
        changes = data.model_dump(exclude_unset=True)

        if "category" in changes:
            try:
                category = self.get_or_create_category(db, user_id, changes.pop("category"))
            except SQLAlchemyError as e:
                db.rollback()
                logger.error(f"Failed to resolve category for item {item_id}: {e}")
                raise PersistenceError("Failed to update item. Please try again.")
            item.category_id = category.id if category else None

        for field, value in changes.items():
            if value is None and field in ("name", "price", "stock_quantity", "reorder_point"):
                continue
            setattr(item, field, quantize_money(value) if field == "price" else value)

        self._commit(db, item, "update item")
        return item

    def delete_item(self, db: Session, user_id: UUID, item_id: UUID) -> None:
        item = self.get_item(db, user_id, item_id)
        try:
            db.delete(item)
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to delete inventory item {item_id}: {e}")
            raise PersistenceError("Failed to delete item. Please try again.")

    def summary(self, db: Session, user_id: UUID) -> InventorySummary:
        items = self.list_items(db, user_id)
        low_stock = [item for item in items if item.is_low_stock]
        total_value = sum((Decimal(item.price or 0) * (item.stock_quantity or 0) for item in items), ZERO)
        return InventorySummary(
            total_items=len(items),
            low_stock_count=len(low_stock),
            total_value=quantize_money(total_value),
            low_stock_items=[to_item_response(item) for item in low_stock],
        )

    def _commit(self, db: Session, obj, action: str) -> None:
        try:
            db.add(obj)
            db.commit()
            db.refresh(obj)
        except IntegrityError as e:
            db.rollback()
            if not isinstance(obj, InventoryCategory):
                logger.error(f"Failed to {action}: {e}")
                raise PersistenceError(f"Failed to {action}. Please try again.")
            logger.warning(f"Rejected duplicate category name: {e}")
            raise ValidationError("A category with this name already exists", fields=["name"])
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Failed to {action}: {e}")
            raise PersistenceError(f"Failed to {action}. Please try again.")


inventory_service = InventoryService()
