# restaurant_ledger/domain/enums.py
import enum


class RecordType(str, enum.Enum):
    customer = "customer"
    reward = "reward"
    coupon = "coupon"
    customer_coupon = "customer_coupon"
    order = "order"
    order_item = "order_item"
    expense = "expense"
    sale = "sale"
    redemption = "redemption"


class OrderStatus(str, enum.Enum):
    # Only the initial state is used today.
    PENDING = "PENDING"


class RedemptionStatus(str, enum.Enum):
    # pending: planned steps are in flight and their outcome is not recorded yet.
    # interrupted: the last batch was settled but some points are still owed.
    pending = "pending"
    interrupted = "interrupted"
    applied = "applied"
