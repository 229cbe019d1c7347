from . import auth
from . import coupons
from . import customers
from . import expenses
from . import orders
from . import rewards
from . import sales

__all__ = [
    "auth",
    "coupons",
    "customers",
    "expenses",
    "orders",
    "rewards",
    "sales",
]
