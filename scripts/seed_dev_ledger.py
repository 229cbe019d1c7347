"""Seed script for populating development customers, rewards and coupons."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

import sys
from pathlib import Path

# Ensure project root is on PYTHONPATH when running as a script.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from restaurant_ledger.core.config import settings
from restaurant_ledger.db.record_store import RecordStore
from restaurant_ledger.db.sql_record_store import SqlRecordStore
from restaurant_ledger.domain import codec
from restaurant_ledger.services import coupon_service, customer_service, reward_service
from restaurant_ledger.services.exceptions import ConflictError


@dataclass(frozen=True, slots=True)
class DevCustomer:
    name: str
    phone_number: str
    date_of_birth: str | None = None
    rewards: tuple[tuple[str, int], ...] = ()


@dataclass(frozen=True, slots=True)
class DevCoupon:
    code: str
    title: str
    description: str


DEV_CUSTOMERS: tuple[DevCustomer, ...] = (
    DevCustomer(
        name="Asha Rao",
        phone_number="+91 98450 11111",
        date_of_birth="1990-04-12",
        rewards=(("loyalty", 120), ("birthday", 50)),
    ),
    DevCustomer(
        name="Vikram Menon",
        phone_number="+91 98450 22222",
        rewards=(("loyalty", 40),),
    ),
    DevCustomer(
        name="Meera Iyer",
        phone_number="+91 98450 33333",
        date_of_birth="1985-11-02",
    ),
)

DEV_COUPONS: tuple[DevCoupon, ...] = (
    DevCoupon(code="WELCOME10", title="Welcome 10%", description="10% off the first visit"),
    DevCoupon(code="DESSERT", title="Free dessert", description="One dessert with any main course"),
)


async def seed_dev_ledger(store: RecordStore | None = None) -> None:
    """Register development data; records that already exist are left untouched."""
    logger = logging.getLogger("seed_dev_ledger")
    logger.info("Seeding development ledger into %s", settings.ASYNC_DATABASE_URL)
    store = store or SqlRecordStore()

    created = 0
    skipped = 0

    for dev_customer in DEV_CUSTOMERS:
        customer_id = codec.customer_id_from_phone(dev_customer.phone_number)
        if await customer_service.get_customer(store, customer_id) is None:
            await customer_service.register_customer(
                store,
                name=dev_customer.name,
                phone_number=dev_customer.phone_number,
                date_of_birth=dev_customer.date_of_birth,
            )
            created += 1
        else:
            skipped += 1

        for reward_type, points in dev_customer.rewards:
            try:
                await reward_service.create_reward(store, customer_id, reward_type, points)
                created += 1
            except ConflictError:
                skipped += 1
                logger.debug("Skipped %s reward for %s (already active)", reward_type, customer_id)

    for dev_coupon in DEV_COUPONS:
        try:
            await coupon_service.create_coupon(
                store,
                {"code": dev_coupon.code, "title": dev_coupon.title, "description": dev_coupon.description},
            )
            created += 1
        except ConflictError:
            skipped += 1
            logger.debug("Skipped coupon %s (already exists)", dev_coupon.code)

    logger.info("Seed completed: %s created, %s skipped", created, skipped)


async def main() -> None:
    await seed_dev_ledger()


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
