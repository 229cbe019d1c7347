from fastapi import APIRouter, Depends, status

from restaurant_ledger.api.deps import get_reader, get_store, get_writer
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.customer import CustomerCreate, CustomerDashboard
from restaurant_ledger.schemas.entities import Customer
from restaurant_ledger.services import customer_service, dashboard_service

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=Customer, status_code=status.HTTP_201_CREATED)
async def register_customer(
    payload: CustomerCreate,
    store: RecordStore = Depends(get_store),
    _: str = Depends(get_writer),
):
    return await customer_service.register_customer(
        store,
        name=payload.name,
        phone_number=payload.phone_number,
        date_of_birth=payload.date_of_birth,
    )


@router.get("", response_model=list[Customer])
async def list_customers(store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    return await customer_service.list_customers(store)


@router.get("/{customer_id}", response_model=Customer)
async def get_customer(customer_id: str, store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    return await customer_service.require_customer(store, customer_id)


@router.get("/{customer_id}/dashboard", response_model=CustomerDashboard)
async def get_dashboard(customer_id: str, store: RecordStore = Depends(get_store), _: str = Depends(get_reader)):
    return await dashboard_service.get_dashboard(store, customer_id)
