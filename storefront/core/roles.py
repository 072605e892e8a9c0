"""
Roles and the capabilities each one grants.

Route guards and DRF permissions ask "does this role hold capability X"
rather than comparing role strings, so adding a role means adding one entry
to ROLE_CAPABILITIES.
"""
import enum
from typing import FrozenSet, Optional

from django.db import models


class Role(models.TextChoices):
    CUSTOMER = 'CUSTOMER', 'Customer'
    ADMIN = 'ADMIN', 'Admin'


class Capability(enum.Enum):
    BROWSE_STOREFRONT = 'browse_storefront'
    MANAGE_ACCOUNT = 'manage_account'
    ACCESS_ADMIN = 'access_admin'
    MANAGE_CATALOG = 'manage_catalog'
    MANAGE_NEWSLETTER = 'manage_newsletter'
    MANAGE_STORAGE = 'manage_storage'


ROLE_CAPABILITIES = {
    Role.CUSTOMER: frozenset({
        Capability.BROWSE_STOREFRONT,
        Capability.MANAGE_ACCOUNT,
    }),
    Role.ADMIN: frozenset(Capability),
}


def parse_role(value) -> Optional[Role]:
    """Return the Role for a claim value, or None if it isn't a known role"""
    if isinstance(value, Role):
        return value
    try:
        return Role(value)
    except ValueError:
        return None


def capabilities_for(role) -> FrozenSet[Capability]:
    role = parse_role(role)
    if role is None:
        return frozenset()
    return ROLE_CAPABILITIES.get(role, frozenset())


def has_capability(role, capability: Capability) -> bool:
    return capability in capabilities_for(role)
