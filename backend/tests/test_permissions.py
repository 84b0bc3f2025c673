"""
Tests for caller identity decoding and the authorization policy.
"""

import jwt
import pytest

from conftest import ADMIN, OTHER_WATCHMAN, RESIDENT_X, RESIDENT_Y, SUPER_ADMIN, WATCHMAN_1
from gatehouse.core.config import get_settings
from gatehouse.core.exceptions import Forbidden
from gatehouse.core.permissions import Action, authorize
from gatehouse.core.security import (
    Identity,
    Role,
    create_access_token,
    decode_access_token,
    identity_from_claims,
)

settings = get_settings()


def test_token_round_trip():
    assert decode_access_token(create_access_token(RESIDENT_X)) == RESIDENT_X


def test_identity_from_camel_case_claims():
    identity = identity_from_claims({"id": "7", "role": "watchman", "buildingId": "3"})
    assert identity == Identity(id=7, role=Role.WATCHMAN, building_id=3)


def test_admin_is_not_a_role():
    with pytest.raises(ValueError):
        identity_from_claims({"sub": "7", "role": "admin", "building_id": 1})


def test_token_without_subject():
    with pytest.raises(ValueError):
        identity_from_claims({"role": "resident"})


def test_token_signed_with_other_key():
    token = jwt.encode({"sub": "1", "role": "super_admin"}, "some-other-key-of-adequate-length!!", algorithm="HS256")
    with pytest.raises(jwt.InvalidSignatureError):
        decode_access_token(token)


@pytest.mark.parametrize(
    "identity, action, building_id",
    [
        (RESIDENT_X, Action.CREATE_BOOKING, 1),
        (ADMIN, Action.DECIDE_BOOKING, 1),
        (SUPER_ADMIN, Action.DECIDE_BOOKING, 42),
        (WATCHMAN_1, Action.VERIFY_PASS, 1),
        (ADMIN, Action.VERIFY_PASS, 1),
        (RESIDENT_X, Action.ISSUE_PASS, 1),
        (SUPER_ADMIN, Action.MANAGE_AMENITIES, None),
        (WATCHMAN_1, Action.VIEW_PASSES, 1),
    ],
)
def test_allowed(identity, action, building_id):
    authorize(identity, action, building_id)


@pytest.mark.parametrize(
    "identity, action, building_id",
    [
        (ADMIN, Action.CREATE_BOOKING, 1),
        (RESIDENT_X, Action.DECIDE_BOOKING, 1),
        (ADMIN, Action.DECIDE_BOOKING, 2),
        (OTHER_WATCHMAN, Action.VERIFY_PASS, 1),
        (RESIDENT_X, Action.VERIFY_PASS, 1),
        (WATCHMAN_1, Action.ISSUE_PASS, 1),
        (ADMIN, Action.MANAGE_AMENITIES, None),
        (RESIDENT_X, Action.VIEW_EVENTS, 1),
    ],
)
def test_denied(identity, action, building_id):
    with pytest.raises(Forbidden):
        authorize(identity, action, building_id)


def test_owner_may_cancel():
    authorize(RESIDENT_X, Action.CANCEL_BOOKING, 1, owner_id=RESIDENT_X.id)
    authorize(RESIDENT_X, Action.CANCEL_PASS, 1, owner_id=RESIDENT_X.id)
    with pytest.raises(Forbidden):
        authorize(RESIDENT_Y, Action.CANCEL_BOOKING, 1, owner_id=RESIDENT_X.id)


def test_ownership_is_not_a_general_pass():
    with pytest.raises(Forbidden):
        authorize(RESIDENT_X, Action.DECIDE_BOOKING, 1, owner_id=RESIDENT_X.id)


def test_forbidden_detail_names_the_reason():
    with pytest.raises(Forbidden, match="Not assigned to this building"):
        authorize(OTHER_WATCHMAN, Action.VERIFY_PASS, 1)
    with pytest.raises(Forbidden, match="may not verify pass"):
        authorize(RESIDENT_X, Action.VERIFY_PASS, 1)
