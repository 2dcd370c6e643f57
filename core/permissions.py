"""
Role based permissions for staff accounts.

Views either list these in ``permission_classes`` or call
``has_permission`` inline when reads are open to any staff member and
only writes are restricted.
"""
from rest_framework.permissions import BasePermission

ADMIN_ROLES = {"admin", "super"}
FRONT_DESK_ROLES = {"receptionist", "nurse", "admin", "super"}
CLINICAL_ROLES = {"doctor", "nurse", "admin", "super"}
LAB_ROLES = {"lab", "admin", "super"}


def _has_role(request, roles) -> bool:
    user = getattr(request, "user", None)
    return bool(user and user.is_authenticated and getattr(user, "role", None) in roles)


class IsAdminRole(BasePermission):
    """Roster, departments and patient deactivation."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, ADMIN_ROLES)

class IsFrontDesk(BasePermission):
    """Reception, nursing and administrators: registration, queue, booking and billing."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, FRONT_DESK_ROLES)

class IsClinician(BasePermission):
    """Doctors, nurses and administrators: vitals, medical notes and orders."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, CLINICAL_ROLES)

class IsLabRole(BasePermission):
    """Lab / radiology staff and administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        return _has_role(request, LAB_ROLES)
