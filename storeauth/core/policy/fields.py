"""Field Visibility Mask for person records.

Narrows the attributes of an already-authorized read. It never grants
access to a row; callers must have an Allow from the decision engine first.
"""

from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional

from storeauth.core.rbac.roles import MANAGER_OR_ABOVE, Role
from storeauth.core.scope.identity import IdentityStore, Principal

ALWAYS_VISIBLE_FIELDS: FrozenSet[str] = frozenset([
    "id",
    "full_name",
    "role",
    "roles",
    "store_id",
    "store_group_id",
    "reports_to",
])

PRIVILEGED_FIELDS: FrozenSet[str] = frozenset([
    "email",
    "birthday_month",
    "birthday_day",
    "start_month",
    "start_year",
    "last_sign_in_at",
])

ALL_FIELDS = ALWAYS_VISIBLE_FIELDS | PRIVILEGED_FIELDS


def person_record(principal: Principal, roles: Iterable[Role] = ()) -> Dict[str, Any]:
    """Flatten a principal into the person-record shape the mask applies to."""
    role_values = sorted(r.value for r in roles)
    return {
        "id": principal.id,
        "full_name": principal.full_name,
        "role": role_values[0] if role_values else None,
        "roles": role_values,
        "store_id": principal.home_store_id,
        "store_group_id": principal.home_group_id,
        "reports_to": principal.reports_to,
        "email": principal.email,
        "birthday_month": principal.birthday_month,
        "birthday_day": principal.birthday_day,
        "start_month": principal.start_month,
        "start_year": principal.start_year,
        "last_sign_in_at": principal.last_sign_in_at,
    }


class FieldVisibilityMask:
    """Decides which person-record fields a requester may see.

    Privileged fields are visible to the target itself, to the target's
    direct manager (reports-to, not transitive), and to holders of a
    manager-or-above role.
    """

    def __init__(self, identity: IdentityStore):
        self.identity = identity

    def can_see_privileged(
        self,
        requester_id: str,
        target_id: str,
        requester_roles: Optional[FrozenSet[Role]] = None,
    ) -> bool:
        if requester_id == target_id:
            return True
        if self.identity.reports_to(target_id) == requester_id:
            return True
        if requester_roles is None:
            requester_roles = self.identity.roles_of(requester_id)
        return bool(requester_roles & MANAGER_OR_ABOVE)

    def visible_fields(
        self,
        requester_id: str,
        target_id: str,
        requester_roles: Optional[FrozenSet[Role]] = None,
    ) -> FrozenSet[str]:
        if self.can_see_privileged(requester_id, target_id, requester_roles):
            return ALL_FIELDS
        return ALWAYS_VISIBLE_FIELDS

    def redact(
        self,
        requester_id: str,
        record: Mapping[str, Any],
        requester_roles: Optional[FrozenSet[Role]] = None,
    ) -> Dict[str, Any]:
        """Copy of ``record`` with fields the requester may not see set to None.

        Keys outside the known field partition are treated as privileged.
        """
        if self.can_see_privileged(requester_id, str(record["id"]), requester_roles):
            return dict(record)
        return {k: (v if k in ALWAYS_VISIBLE_FIELDS else None) for k, v in record.items()}
