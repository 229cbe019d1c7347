from __future__ import annotations

from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.schemas.customer import CustomerDashboard
from restaurant_ledger.services import coupon_service, customer_service, reward_service


async def get_dashboard(store: RecordStore, customer_id: str) -> CustomerDashboard:
    """Profile plus everything co-located in the customer's partition."""
    customer = await customer_service.require_customer(store, customer_id)
    rewards = await reward_service.list_rewards(store, customer_id)

    return CustomerDashboard(
        customer=customer,
        rewards=rewards,
        available_points=sum(entry.points for entry in rewards),
        redemptions=await reward_service.list_redemptions(store, customer_id),
        coupons=await coupon_service.list_customer_coupons(store, customer_id),
    )
