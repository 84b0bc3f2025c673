"""
Visitor pass endpoints: issuance, gate verification, cancellation and reads.
"""

from fastapi import APIRouter, Depends, status

from gatehouse.core.clock import Clock, get_clock
from gatehouse.core.security import Identity, get_current_identity
from gatehouse.db.session import Database, get_database
from gatehouse.schemas.visitor_pass import (
    PassCancelResponse,
    PassCreate,
    PassCreateResponse,
    PassResponse,
    PassVerifyRequest,
    VerificationResponse,
)
from gatehouse.services.pass_policy import code_from_qr
from gatehouse.services.pass_service import (
    cancel_pass,
    get_pass,
    issue_pass,
    list_active_passes,
    verify_pass,
)

router = APIRouter(tags=["Visitor Passes"])


@router.post(
    "/buildings/{building_id}/visitor-passes",
    response_model=PassCreateResponse,
    status_code=status.HTTP_201_CREATED,
)
async def issue_pass_endpoint(
    building_id: int,
    data: PassCreate,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    visitor_pass = await issue_pass(db, identity, building_id, data, clock)
    return PassCreateResponse(
        message="Visitor pass created",
        pass_=PassResponse.from_pass(visitor_pass, clock.now()),
    )


@router.get("/buildings/{building_id}/visitor-passes", response_model=list[PassResponse])
async def list_passes_endpoint(
    building_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    """Passes that are still usable, soonest expiry first."""
    now = clock.now()
    passes = await list_active_passes(db, identity, building_id, clock)
    return [PassResponse.from_pass(p, now) for p in passes]


@router.post("/buildings/{building_id}/visitor-passes/verify", response_model=VerificationResponse)
async def verify_pass_endpoint(
    building_id: int,
    data: PassVerifyRequest,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    """
    Verify a code (or QR payload) at the gate.

    Always 200 for a known pass: `valid` says whether the visitor may enter
    and `message` is one of verified, already verified, expired, cancelled.
    """
    code = data.code if data.code and data.code.strip() else code_from_qr(data.qr_data)
    answer = await verify_pass(db, identity, building_id, code, clock)
    return VerificationResponse.model_validate(answer)


@router.get("/visitor-passes/{pass_id}", response_model=PassResponse)
async def get_pass_endpoint(
    pass_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    visitor_pass = await get_pass(db, identity, pass_id)
    return PassResponse.from_pass(visitor_pass, clock.now())


@router.post("/visitor-passes/{pass_id}/cancel", response_model=PassCancelResponse)
async def cancel_pass_endpoint(
    pass_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Database = Depends(get_database),
    clock: Clock = Depends(get_clock),
):
    visitor_pass = await cancel_pass(db, identity, pass_id, clock)
    return PassCancelResponse(
        message="Pass cancelled successfully",
        id=visitor_pass.id,
        status=visitor_pass.status,
    )
