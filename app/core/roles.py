from enum import Enum


class Role(str, Enum):
    """Closed set of user roles"""
    SUPERADMIN = "superadmin"
    ADMIN = "admin"
    STORE_OFFICER = "store_officer"
    IPP = "ipp"
    DISPENSARY = "dispensary"
    OTHER = "other"

    @property
    def is_delegated(self) -> bool:
        """Delegated roles sell from their delegations, never from central stock"""
        return self in (Role.IPP, Role.DISPENSARY)


class DelegationTarget(str, Enum):
    """Who a delegation is allocated to"""
    IPP = "ipp"
    DISPENSARY = "dispensary"
    OTHER = "other"

    @property
    def role(self) -> Role:
        return Role(self.value)

    @property
    def is_notified(self) -> bool:
        return self.role.is_delegated


# Roles allowed to delegate stock and manage medicines
STOCK_MANAGERS = (Role.SUPERADMIN, Role.ADMIN, Role.STORE_OFFICER)
