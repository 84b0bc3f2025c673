"""
Authorization policy.

Every engine operation calls authorize() before it looks at any state, so a
caller from another building learns nothing about what exists there. The
rules live in one table keyed by Action; a super admin is exempt from
building scoping, every other role must belong to the target building.
"""

from enum import Enum
from typing import Optional

from gatehouse.core.exceptions import Forbidden
from gatehouse.core.logging import get_logger
from gatehouse.core.security import Identity, Role

logger = get_logger(__name__)


class Action(str, Enum):
    CREATE_BOOKING = "create_booking"
    DECIDE_BOOKING = "decide_booking"
    CANCEL_BOOKING = "cancel_booking"
    VIEW_BOOKINGS = "view_bookings"
    VIEW_AVAILABILITY = "view_availability"
    MANAGE_AMENITIES = "manage_amenities"
    ISSUE_PASS = "issue_pass"
    VERIFY_PASS = "verify_pass"
    CANCEL_PASS = "cancel_pass"
    VIEW_PASSES = "view_passes"
    VIEW_EVENTS = "view_events"


ADMINS = frozenset({Role.BUILDING_ADMIN, Role.SUPER_ADMIN})
EVERYONE = frozenset(Role)

POLICY: dict[Action, frozenset] = {
    Action.CREATE_BOOKING: frozenset({Role.RESIDENT}),
    Action.DECIDE_BOOKING: ADMINS,
    Action.CANCEL_BOOKING: ADMINS,
    Action.VIEW_BOOKINGS: ADMINS,
    Action.VIEW_AVAILABILITY: EVERYONE,
    Action.MANAGE_AMENITIES: frozenset({Role.SUPER_ADMIN}),
    Action.ISSUE_PASS: frozenset({Role.RESIDENT, Role.BUILDING_ADMIN, Role.SUPER_ADMIN}),
    Action.VERIFY_PASS: frozenset({Role.BUILDING_ADMIN, Role.SUPER_ADMIN, Role.WATCHMAN}),
    Action.CANCEL_PASS: ADMINS,
    Action.VIEW_PASSES: EVERYONE,
    Action.VIEW_EVENTS: ADMINS,
}

# Actions the creator of the record may perform whatever their role
OWNER_ACTIONS = frozenset({Action.CANCEL_BOOKING, Action.CANCEL_PASS})


def in_building(identity: Identity, building_id: Optional[int]) -> bool:
    if identity.role == Role.SUPER_ADMIN or building_id is None:
        return True
    return identity.building_id is not None and int(identity.building_id) == int(building_id)


def authorize(
    identity: Identity,
    action: Action,
    building_id: Optional[int] = None,
    owner_id: Optional[int] = None,
) -> None:
    """Raise Forbidden unless the caller may perform action in building_id."""
    is_owner = owner_id is not None and owner_id == identity.id
    allowed = identity.role in POLICY[action] or (is_owner and action in OWNER_ACTIONS)

    if allowed and (is_owner or in_building(identity, building_id)):
        return

    logger.warning(
        "access_denied",
        action=action.value,
        target_building_id=building_id,
    )
    if not allowed:
        raise Forbidden(f"Role {identity.role.value} may not {action.value.replace('_', ' ')}")
    raise Forbidden("Not assigned to this building")
