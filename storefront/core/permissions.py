"""
DRF permission classes built on the role/capability mapping.

Usage:
    @api_view(['POST'])
    @permission_classes([IsAuthenticated, CanManageCatalog])
    def category_create(request):
        ...
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .roles import Capability, has_capability


def capability_required(capability: Capability, read_only_public=False):
    """Build a permission class that requires `capability` on the user's role"""

    class HasCapability(BasePermission):
        message = 'You do not have permission to perform this action.'

        def has_permission(self, request, view):
            if read_only_public and request.method in SAFE_METHODS:
                return True
            user = request.user
            if not user or not user.is_authenticated:
                return False
            return has_capability(getattr(user, 'role', None), capability)

    HasCapability.__name__ = f"Has{capability.name.title().replace('_', '')}"
    return HasCapability


CanManageCatalog = capability_required(Capability.MANAGE_CATALOG)
CatalogReadOrManage = capability_required(Capability.MANAGE_CATALOG, read_only_public=True)
CanManageNewsletter = capability_required(Capability.MANAGE_NEWSLETTER)
CanManageStorage = capability_required(Capability.MANAGE_STORAGE)
