from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.core.database import Base, get_db
from app.deps import StaffUser, get_current_staff
from app.models.classification_group import ClassificationGroup
from app.models.classification_option import ClassificationOption
from app.models.order import Order, utcnow
from app.models.product import Product
from app.models.receipt_sequence import ReceiptSequence
from app.routers.bank_webhook import router as bank_webhook_router
from app.routers.checkout import router as checkout_router
from app.routers.customers import router as customers_router
from app.routers.orders import router as orders_router
from app.services.receipts import INCOME_RECEIPT_SEQUENCE, next_receipt_code
from tests.fixtures_data import ICED_COFFEE, MILK_TEA, RETIRED_PRODUCT, STAFF_USER


def build_session(expire_on_commit: bool = True) -> Session:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(
        autocommit=False, autoflush=False, expire_on_commit=expire_on_commit, bind=engine
    )
    Base.metadata.create_all(bind=engine)
    return TestingSessionLocal()


def add_product(db: Session, data: dict) -> Product:
    product = Product(
        id=data["id"],
        name=data["name"],
        selling_price=data["selling_price"],
        is_active=data.get("is_active", True),
    )
    for sort_order, group_data in enumerate(data.get("groups", [])):
        group = ClassificationGroup(
            id=group_data["id"],
            name=group_data["name"],
            is_required=group_data["is_required"],
            allow_multiple=group_data["allow_multiple"],
            sort_order=sort_order,
        )
        for option_order, option_data in enumerate(group_data["options"]):
            group.options.append(
                ClassificationOption(
                    id=option_data["id"],
                    name=option_data["name"],
                    extra_price=option_data["extra_price"],
                    sort_order=option_order,
                )
            )
        product.classification_groups.append(group)
    db.add(product)
    return product


def seed_catalog(db: Session) -> None:
    for data in (MILK_TEA, ICED_COFFEE, RETIRED_PRODUCT):
        add_product(db, data)
    db.commit()


def build_client(db: Session, staff: dict | None = STAFF_USER) -> TestClient:
    app = FastAPI()
    app.include_router(checkout_router)
    app.include_router(orders_router)
    app.include_router(customers_router)
    app.include_router(bank_webhook_router)

    app.dependency_overrides[get_db] = lambda: db
    if staff is not None:
        app.dependency_overrides[get_current_staff] = lambda: StaffUser(**staff)

    return TestClient(app)


def settle_order_directly(db: Session, order_id: int, status: str = "completed") -> None:
    """Move a pending order to ``status`` with a bulk UPDATE, leaving loaded objects untouched."""
    now = utcnow()
    values = {Order.status: status, Order.updated_at: now}
    if status == "completed":
        values[Order.paid_at] = now
        values[Order.income_receipt_code] = next_receipt_code(db, now)
    db.query(Order).filter(Order.id == order_id).update(values, synchronize_session=False)
    db.commit()


def receipt_sequence_value(db: Session) -> int:
    sequence = db.query(ReceiptSequence).filter(ReceiptSequence.name == INCOME_RECEIPT_SEQUENCE).first()
    return sequence.value if sequence else 0
