"""
Visitor pass service: issuance, gate verification, cancellation and reads.

VERIFICATION STRATEGY: Compare-and-Set on status
================================================

Problem:
  A watchman and an admin (or two watchmen) submit the same code at the
  same moment. Both read status=active, both write verified, and the pass
  ends up "verified" twice with whichever verifier wrote last.

Solution:
  UPDATE visitor_passes SET status='verified', verified_by=:me, verified_at=:now
  WHERE id = :id AND status = 'active' AND expires_at >= :now

  Exactly one caller gets rows_affected == 1 and writes the audit event.
  Everyone else re-reads the committed row and answers "already verified"
  with the winner's verified_by / verified_at. Nobody errors, nobody waits
  beyond the row lock, and the stored verifier is always the first one.

Lazy expiry:
  Expiry is not swept by a job. Whoever first notices now > expires_at on an
  active pass persists `expired` with the same conditional update (guarded
  by status='active', so the second writer is a no-op).
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gatehouse.core.clock import Clock
from gatehouse.core.config import get_settings
from gatehouse.core.exceptions import (
    AlreadyCancelled,
    DuplicatePassCode,
    Forbidden,
    NotFound,
    PassNotActive,
    TransientError,
    ValidationError,
)
from gatehouse.core.logging import get_logger
from gatehouse.core.metrics import passes_issued, record_verification
from gatehouse.core.permissions import Action, authorize
from gatehouse.core.security import Identity, Role
from gatehouse.db.session import Database
from gatehouse.db.transitions import reload, transition
from gatehouse.models.visitor_pass import PassStatus, VisitorPass
from gatehouse.schemas.visitor_pass import PassCreate
from gatehouse.services.audit_service import EventType, record_event
from gatehouse.services.pass_policy import (
    effective_status,
    generate_code,
    is_expired,
    minutes_remaining,
    normalize_code,
    resolve_expiry,
)

logger = get_logger(__name__)
settings = get_settings()

MSG_VERIFIED = "verified"
MSG_ALREADY_VERIFIED = "already verified"
MSG_EXPIRED = "expired"
MSG_CANCELLED = "cancelled"


@dataclass
class PassVerification:
    """What the gate is told. valid=False is an answer, not a failure."""

    valid: bool
    message: str
    visitor_pass: VisitorPass
    time_remaining_minutes: int

    @property
    def status(self) -> str:
        return self.visitor_pass.status

    @property
    def code(self) -> str:
        return self.visitor_pass.code

    @property
    def visitor_name(self) -> Optional[str]:
        return self.visitor_pass.visitor_name

    @property
    def apartment_id(self) -> Optional[int]:
        return self.visitor_pass.apartment_id

    @property
    def created_by(self) -> int:
        return self.visitor_pass.created_by

    @property
    def created_at(self) -> datetime:
        return self.visitor_pass.created_at

    @property
    def expires_at(self) -> datetime:
        return self.visitor_pass.expires_at

    @property
    def verified_by(self) -> Optional[int]:
        return self.visitor_pass.verified_by

    @property
    def verified_at(self) -> Optional[datetime]:
        return self.visitor_pass.verified_at


async def issue_pass(
    db: Database,
    identity: Identity,
    building_id: int,
    data: PassCreate,
    clock: Clock,
) -> VisitorPass:
    """
    Mint an active pass. Generated codes are retried on a uniqueness
    collision; a caller-supplied code that is taken is a DuplicatePassCode.
    """
    authorize(identity, Action.ISSUE_PASS, building_id)

    now = clock.now()
    expires_at = resolve_expiry(data.expires_at, now, settings.PASS_VALIDITY_MINUTES)
    if identity.role == Role.RESIDENT:
        apartment_id = identity.apartment_id
    else:
        apartment_id = data.apartment_id or identity.apartment_id

    explicit_code = normalize_code(data.code) if data.code else None
    if explicit_code is not None and not explicit_code:
        raise ValidationError("Pass code cannot be blank")
    attempts = 1 if explicit_code else settings.PASS_CODE_MAX_ATTEMPTS

    async with db.transaction() as session:
        for attempt in range(1, attempts + 1):
            visitor_pass = VisitorPass(
                building_id=building_id,
                apartment_id=apartment_id,
                code=explicit_code or generate_code(settings.PASS_CODE_LENGTH),
                visitor_name=data.visitor_name,
                qr_data=data.qr_data,
                status=PassStatus.ACTIVE,
                created_by=identity.id,
                created_at=now,
                expires_at=expires_at,
            )
            try:
                async with session.begin_nested():
                    session.add(visitor_pass)
            except IntegrityError:
                if explicit_code:
                    raise DuplicatePassCode()
                logger.info("pass_code_collision", attempt=attempt)
                continue
            break
        else:
            raise TransientError("Could not allocate a unique pass code, please retry")

        record_event(
            session,
            building_id=building_id,
            type=EventType.VISITOR_REQUEST,
            ref_id=visitor_pass.id,
            message=f"Visitor pass created: {visitor_pass.code}, valid until {expires_at.isoformat()}",
            created_by=identity.id,
        )

    passes_issued.labels(code_source="explicit" if explicit_code else "generated").inc()
    logger.info(
        "pass_issued",
        pass_id=visitor_pass.id,
        code=visitor_pass.code,
        expires_at=expires_at.isoformat(),
    )
    return visitor_pass


def _answer(visitor_pass: VisitorPass, valid: bool, message: str, now: datetime) -> PassVerification:
    return PassVerification(
        valid=valid,
        message=message,
        visitor_pass=visitor_pass,
        time_remaining_minutes=minutes_remaining(visitor_pass, now),
    )


async def _settle(
    session: AsyncSession,
    visitor_pass: VisitorPass,
    identity: Identity,
    now: datetime,
) -> PassVerification:
    pass_id = visitor_pass.id

    if is_expired(visitor_pass, now):
        if await transition(
            session,
            VisitorPass,
            pass_id,
            when=[VisitorPass.status == PassStatus.ACTIVE],
            values={"status": PassStatus.EXPIRED},
        ):
            record_event(
                session,
                building_id=visitor_pass.building_id,
                type=EventType.VISITOR_EXPIRED,
                ref_id=pass_id,
                message=f"Visitor pass {visitor_pass.code} expired",
                created_by=identity.id,
            )
        visitor_pass = await reload(session, VisitorPass, pass_id)

    if visitor_pass.status == PassStatus.ACTIVE:
        won = await transition(
            session,
            VisitorPass,
            pass_id,
            when=[VisitorPass.status == PassStatus.ACTIVE, VisitorPass.expires_at >= now],
            values={
                "status": PassStatus.VERIFIED,
                "verified_by": identity.id,
                "verified_at": now,
            },
        )
        visitor_pass = await reload(session, VisitorPass, pass_id)
        if won:
            record_event(
                session,
                building_id=visitor_pass.building_id,
                type=EventType.VISITOR_VERIFIED,
                ref_id=pass_id,
                message=f"Visitor pass verified by {identity.role.value}: {visitor_pass.code}",
                created_by=identity.id,
            )
            return _answer(visitor_pass, True, MSG_VERIFIED, now)
        logger.info("pass_verify_lost_race", pass_id=pass_id, winner=visitor_pass.verified_by)

    if visitor_pass.status == PassStatus.VERIFIED:
        return _answer(visitor_pass, True, MSG_ALREADY_VERIFIED, now)
    if visitor_pass.status == PassStatus.CANCELLED:
        return _answer(visitor_pass, False, MSG_CANCELLED, now)
    return _answer(visitor_pass, False, MSG_EXPIRED, now)


async def verify_pass(
    db: Database,
    identity: Identity,
    building_id: int,
    code: str,
    clock: Clock,
) -> PassVerification:
    """
    Check a code presented at the gate of building_id and consume the pass
    if it is usable. Scoping is checked before the code is looked up, so a
    watchman from another building can't probe for codes.
    """
    authorize(identity, Action.VERIFY_PASS, building_id)

    code = normalize_code(code or "")
    if not code:
        raise ValidationError("Pass code is required")

    now = clock.now()
    async with db.transaction() as session:
        result = await session.execute(
            select(VisitorPass).where(
                VisitorPass.building_id == building_id,
                VisitorPass.code == code,
            )
        )
        visitor_pass = result.scalar_one_or_none()
        if visitor_pass is None:
            logger.info("pass_verify_unknown_code", code=code)
            raise NotFound("Pass not found or does not belong to this building")

        answer = await _settle(session, visitor_pass, identity, now)

    record_verification(answer.message.replace(" ", "_"))
    logger.info(
        "pass_verification",
        pass_id=answer.visitor_pass.id,
        valid=answer.valid,
        outcome=answer.message,
        verified_by=answer.verified_by,
    )
    return answer


async def cancel_pass(db: Database, identity: Identity, pass_id: int, clock: Clock) -> VisitorPass:
    """Cancel an active pass. Only the issuer or a building admin may do this."""
    now = clock.now()
    async with db.transaction() as session:
        visitor_pass = await session.get(VisitorPass, pass_id)
        if visitor_pass is None:
            raise NotFound("Visitor pass not found")
        authorize(identity, Action.CANCEL_PASS, visitor_pass.building_id, owner_id=visitor_pass.created_by)

        won = await transition(
            session,
            VisitorPass,
            pass_id,
            when=[VisitorPass.status == PassStatus.ACTIVE, VisitorPass.expires_at >= now],
            values={
                "status": PassStatus.CANCELLED,
                "cancelled_by": identity.id,
                "cancelled_at": now,
            },
        )
        visitor_pass = await reload(session, VisitorPass, pass_id)
        if not won:
            if visitor_pass.status == PassStatus.CANCELLED:
                raise AlreadyCancelled("Pass is already cancelled")
            raise PassNotActive(effective_status(visitor_pass, now))

        record_event(
            session,
            building_id=visitor_pass.building_id,
            type=EventType.VISITOR_CANCELLED,
            ref_id=pass_id,
            message=f"Visitor pass {visitor_pass.code} cancelled",
            created_by=identity.id,
        )

    logger.info("pass_cancelled", pass_id=pass_id)
    return visitor_pass


async def get_pass(db: Database, identity: Identity, pass_id: int) -> VisitorPass:
    async with db.transaction() as session:
        visitor_pass = await session.get(VisitorPass, pass_id)
        if visitor_pass is None:
            raise NotFound("Visitor pass not found")
        authorize(identity, Action.VIEW_PASSES, visitor_pass.building_id)
        if identity.role == Role.RESIDENT and visitor_pass.created_by != identity.id:
            raise Forbidden("Residents can only view passes they issued")
        return visitor_pass


async def list_active_passes(
    db: Database,
    identity: Identity,
    building_id: int,
    clock: Clock,
) -> list[VisitorPass]:
    """
    Passes that can still be used at the gate, soonest expiry first.
    Residents only see the passes they issued.
    """
    authorize(identity, Action.VIEW_PASSES, building_id)

    query = select(VisitorPass).where(
        VisitorPass.building_id == building_id,
        VisitorPass.status == PassStatus.ACTIVE,
        VisitorPass.expires_at >= clock.now(),
    )
    if identity.role == Role.RESIDENT:
        query = query.where(VisitorPass.created_by == identity.id)

    async with db.transaction() as session:
        result = await session.execute(query.order_by(VisitorPass.expires_at.asc()))
        return list(result.scalars().all())
