from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.deps import StaffUser, require_staff
from app.services.checkout import MIN_LOOKUP_PHONE_LENGTH, find_customer_by_phone, normalize_phone

router = APIRouter(prefix="/api/customers", tags=["customers"])


@router.get("/lookup")
def lookup_customer(
    phone: str,
    db: Session = Depends(get_db),
    staff: StaffUser = Depends(require_staff),
):
    normalized = normalize_phone(phone)
    if len(normalized) < MIN_LOOKUP_PHONE_LENGTH:
        raise HTTPException(
            status_code=400,
            detail=f"Phone must have at least {MIN_LOOKUP_PHONE_LENGTH} digits",
        )

    customer = find_customer_by_phone(db, normalized)
    if not customer:
        raise HTTPException(status_code=404, detail="Customer not found")

    return {
        "id": customer.id,
        "name": customer.name,
        "phone": customer.phone,
        "loyalty_points": customer.loyalty_points,
    }
