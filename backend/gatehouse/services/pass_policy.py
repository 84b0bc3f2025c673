"""
Visitor pass rules that don't touch the store: code alphabet, expiry
resolution and the one function that decides whether a pass has expired.

Every read and write path asks effective_status() instead of comparing
timestamps itself, so listings, verification and cancellation always agree
on what "expired" means: strictly after expires_at.
"""

import json
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from gatehouse.core.exceptions import ValidationError
from gatehouse.core.logging import get_logger
from gatehouse.models.visitor_pass import PassStatus, VisitorPass

logger = get_logger(__name__)

# No 0/O, 1/I/L: codes are read aloud and typed by hand at the gate
PASS_CODE_ALPHABET = "ABCDEFGHJKMNPQRSTUVWXYZ23456789"


def generate_code(length: int = 6) -> str:
    return "".join(secrets.choice(PASS_CODE_ALPHABET) for _ in range(length))


def normalize_code(code: str) -> str:
    return code.strip().upper()


def code_from_qr(qr_data: str) -> str:
    """QR payloads are JSON objects carrying the pass code under "code"."""
    try:
        content = json.loads(qr_data)
    except (TypeError, ValueError):
        raise ValidationError("Invalid QR data format")
    code = content.get("code") if isinstance(content, dict) else None
    if not isinstance(code, str) or not code.strip():
        raise ValidationError("QR data does not contain a pass code")
    return normalize_code(code)


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 instant. A trailing "Z" is accepted and naive values
    are taken as UTC. Returns None for anything that isn't a string or
    datetime, or that can't be represented as a UTC datetime.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except (ValueError, OverflowError):
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        # e.g. 9999-12-31T23:59:59-05:00 lands past datetime.max in UTC
        return None


def resolve_expiry(
    requested: Any,
    issued_at: datetime,
    validity_minutes: int = 30,
) -> datetime:
    default = issued_at + timedelta(minutes=validity_minutes)
    if requested is None or requested == "":
        return default

    parsed = parse_instant(requested)
    if parsed is None:
        logger.warning("pass_expiry_unparseable", requested=str(requested), fallback=default.isoformat())
        return default
    return parsed


def is_expired(visitor_pass: VisitorPass, now: datetime) -> bool:
    return visitor_pass.status == PassStatus.ACTIVE and now > visitor_pass.expires_at


def effective_status(visitor_pass: VisitorPass, now: datetime) -> str:
    if is_expired(visitor_pass, now):
        return PassStatus.EXPIRED
    return visitor_pass.status


def minutes_remaining(visitor_pass: VisitorPass, now: datetime) -> int:
    """Whole minutes left in the validity window; 0 once expired or cancelled."""
    if effective_status(visitor_pass, now) not in (PassStatus.ACTIVE, PassStatus.VERIFIED):
        return 0
    return max(0, int((visitor_pass.expires_at - now).total_seconds() // 60))
