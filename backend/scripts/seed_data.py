"""
Seed script to generate synthetic customers, invoices, estimates, inventory
and inbox data for a demo user
"""
import sys
import os
import uuid
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy.orm import Session
from crm.database import SessionLocal, engine, Base
import crm.models  # noqa: F401  registers every table on Base.metadata
from crm.models.customer import Customer
from crm.models.invoice import Invoice
from crm.models.inventory import InventoryItem
from crm.models.message import Message
from crm.models.profile import Profile
from crm.schemas.inventory import InventoryItemCreate
from crm.schemas.invoice import InvoiceItemInput, InvoiceStatus
from crm.services.customer_service import generate_customer_number
from crm.services.inventory_service import inventory_service
from crm.services.invoice_service import invoice_service
from crm.services.profile_service import default_invoice_settings, profile_service
from crm.utils.line_items import build_items
from crm.utils.totals import compute_totals
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from faker import Faker

fake = Faker()

# Fixed so the demo user can be passed as X-User-Id
DEMO_USER_ID = uuid.UUID(os.getenv("DEMO_USER_ID", "00000000-0000-0000-0000-000000000001"))


def create_profile(db: Session, user_id: uuid.UUID) -> Profile:
    profile = Profile(
        id=user_id,
        business_name=fake.company(),
        business_email=fake.company_email(),
        business_type="both",
        address=fake.address(),
        website=f"https://{fake.domain_name()}",
    )
    db.merge(profile)
    db.commit()
    profile_service.get_invoice_settings(db, user_id)
    return profile


def create_customers(db: Session, user_id: uuid.UUID, count: int = 10) -> list[Customer]:
    customers = []
    for _ in range(count):
        customer = Customer(
            user_id=user_id,
            customer_number=generate_customer_number(),
            first_name=fake.first_name(),
            last_name=fake.last_name(),
            email=fake.email(),
            phone=fake.phone_number(),
            address=fake.address(),
        )
        db.add(customer)
        customers.append(customer)
    db.commit()
    return customers


def random_items() -> list[InvoiceItemInput]:
    return [
        InvoiceItemInput(
            description=fake.catch_phrase(),
            quantity=fake.random_int(min=1, max=10),
            rate=str(round(fake.random.uniform(15.0, 400.0), 2)),
        )
        for _ in range(fake.random_int(min=1, max=4))
    ]


def create_invoices(db: Session, user_id: uuid.UUID, customers: list[Customer], count: int = 25) -> list[Invoice]:
    """Create invoices across every lifecycle state, spread over the last two months"""
    tax = default_invoice_settings().tax
    statuses = [InvoiceStatus.DRAFT, InvoiceStatus.SENT, InvoiceStatus.PAID, InvoiceStatus.VOID]
    invoices = []

    for i in range(count):
        items = build_items(random_items())
        totals = compute_totals(items, tax)
        is_estimate = i % 6 == 0
        status = InvoiceStatus.ESTIMATE if is_estimate else fake.random_element(elements=statuses)
        created = datetime.now(timezone.utc) - timedelta(days=fake.random_int(min=0, max=60))

        invoice = Invoice(
            user_id=user_id,
            customer_id=fake.random_element(elements=customers).id,
            invoice_number=invoice_service.numbers.next(),
            type="estimate" if is_estimate else fake.random_element(elements=("service", "product")),
            status=status.value,
            items=[item.model_dump(mode="json") for item in items],
            tax_rate=tax.rate if tax.enabled else None,
            subtotal=totals.subtotal,
            tax_amount=totals.tax_amount,
            total=totals.total,
            due_date=created.date() + timedelta(days=30),
            paid_date=created + timedelta(days=fake.random_int(min=1, max=20)) if status == InvoiceStatus.PAID else None,
            notes=fake.sentence(),
            created_at=created,
        )
        db.add(invoice)
        invoices.append(invoice)

    db.commit()
    return invoices


def create_inventory(db: Session, user_id: uuid.UUID, count: int = 12) -> list[InventoryItem]:
    categories = ["Hardware", "Supplies", "Parts", "Accessories"]
    items = []
    for _ in range(count):
        items.append(inventory_service.create_item(db, user_id, InventoryItemCreate(
            sku=f"SKU-{fake.random_int(min=1000, max=9999)}",
            name=fake.word().title() + " " + fake.word().title(),
            description=fake.sentence(),
            category=fake.random_element(elements=categories),
            price=Decimal(str(round(fake.random.uniform(5.0, 250.0), 2))),
            stock_quantity=fake.random_int(min=0, max=50),
            reorder_point=10,
        )))
    return items


def create_messages(db: Session, user_id: uuid.UUID, invoices: list[Invoice]) -> int:
    sent = [inv for inv in invoices if inv.status in ("sent", "paid")]
    for invoice in sent:
        db.add(Message(
            user_id=user_id,
            type="email",
            subject=f"Invoice {invoice.invoice_number} sent",
            content=f"Invoice {invoice.invoice_number} was emailed to the customer.",
            invoice_id=invoice.id,
            read=fake.boolean(),
        ))
    db.add(Message(user_id=user_id, type="system", subject="Welcome", content="Your account is ready."))
    db.commit()
    return len(sent) + 1


def main():
    """Main seeding function"""
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        print(f"Seeding demo user {DEMO_USER_ID}...")
        create_profile(db, DEMO_USER_ID)

        customers = create_customers(db, DEMO_USER_ID)
        print(f"Created {len(customers)} customers")

        invoices = create_invoices(db, DEMO_USER_ID, customers)
        print(f"Created {len(invoices)} invoices")

        inventory = create_inventory(db, DEMO_USER_ID)
        print(f"Created {len(inventory)} inventory items")

        message_count = create_messages(db, DEMO_USER_ID, invoices)
        print(f"Created {message_count} messages")

        print("\nSeeding complete!")
        print(f"Use header X-User-Id: {DEMO_USER_ID}")

    except Exception as e:
        print(f"Error during seeding: {e}")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    main()
