from app.models.core.mixins import TimestampMixin

# 1. Users
from app.models.user.user_model import User

# 2. Medicines and delegations
from app.models.inventory.medicine_model import Medicine
from app.models.inventory.delegation_model import (
    Delegation,
    DelegationNotification
)

# 3. Sales and returns
from app.models.sales.sales_model import (
    Sale,
    SaleAllocation,
    SaleStatus
)
from app.models.sales.returns_model import (
    SalesReturn,
    SalesReturnItem
)

# 4. System models
from app.models.system_md.sys_models import IdempotencyKey

__all__ = [
    # Mixins
    'TimestampMixin',

    # Users
    'User',

    # Inventory
    'Medicine',
    'Delegation',
    'DelegationNotification',

    # Sales
    'Sale',
    'SaleAllocation',
    'SaleStatus',
    'SalesReturn',
    'SalesReturnItem',

    # System
    'IdempotencyKey',
]
