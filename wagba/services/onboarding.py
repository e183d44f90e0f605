"""
Pre-onboarding gate, service areas and the waitlist.

New customers must live in a serviced neighborhood and hold a valid
invitation code. Everyone who is turned away lands on the waitlist with the
reason, so they can be contacted when capacity opens up.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wagba.core.exceptions import ConflictError, NotFoundError
from wagba.models import InvitationCode, Neighborhood, WaitlistEntry, WaitlistReason

logger = logging.getLogger(__name__)

AREA_NOT_SERVICED_MESSAGE = (
    "We don't deliver to your neighborhood yet. "
    "You're on our waitlist and we'll let you know as soon as we do."
)
INVALID_CODE_MESSAGE = (
    "This invitation code is not valid. "
    "You're on our waitlist and we'll reach out when a spot opens up."
)


@dataclass
class PreOnboardingResult:
    valid: bool
    message: Optional[str] = None
    reason: Optional[WaitlistReason] = None


async def _add_to_waitlist(
    db: AsyncSession,
    email: str,
    neighborhood: str,
    reason: WaitlistReason,
) -> WaitlistEntry:
    entry = WaitlistEntry(email=email.strip().lower(), neighborhood=neighborhood, rejection_reason=reason)
    db.add(entry)
    await db.commit()
    logger.info(f"Waitlisted {entry.email} ({neighborhood}): {reason.value}")
    return entry


async def validate_pre_onboarding(
    db: AsyncSession,
    email: str,
    neighborhood: str,
    invitation_code: str,
) -> PreOnboardingResult:
    """
    Check the neighborhood and invitation code of a prospective customer.

    On success the code's use counter is incremented; on rejection the
    customer is waitlisted with the reason.
    """
    result = await db.execute(
        select(Neighborhood).where(func.lower(Neighborhood.name) == neighborhood.strip().lower())
    )
    area = result.scalars().first()
    if area is None or not area.is_serviced:
        await _add_to_waitlist(db, email, neighborhood, WaitlistReason.AREA_NOT_SERVICED)
        return PreOnboardingResult(False, AREA_NOT_SERVICED_MESSAGE, WaitlistReason.AREA_NOT_SERVICED)

    result = await db.execute(
        select(InvitationCode).where(func.upper(InvitationCode.code) == invitation_code.strip().upper())
    )
    code = result.scalars().first()
    if code is None or not code.is_active or code.is_exhausted:
        await _add_to_waitlist(db, email, neighborhood, WaitlistReason.INVALID_CODE)
        return PreOnboardingResult(False, INVALID_CODE_MESSAGE, WaitlistReason.INVALID_CODE)

    code.current_uses += 1
    await db.commit()
    logger.info(f"Invitation code {code.code} used ({code.current_uses}/{code.max_uses or 'unlimited'})")
    return PreOnboardingResult(True)


# =============================================================================
# NEIGHBORHOODS
# =============================================================================

async def list_neighborhoods(db: AsyncSession, serviced_only: bool = False) -> list[Neighborhood]:
    query = select(Neighborhood).order_by(Neighborhood.name)
    if serviced_only:
        query = query.where(Neighborhood.is_serviced.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def create_neighborhood(db: AsyncSession, name: str, is_serviced: bool = False) -> Neighborhood:
    neighborhood = Neighborhood(name=name.strip(), is_serviced=is_serviced)
    db.add(neighborhood)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Neighborhood '{name}' already exists") from None
    return neighborhood


async def update_neighborhood(db: AsyncSession, neighborhood_id: int, changes: Mapping[str, Any]) -> Neighborhood:
    neighborhood = await db.get(Neighborhood, neighborhood_id)
    if neighborhood is None:
        raise NotFoundError("Neighborhood not found")
    for field_name in ("name", "is_serviced"):
        if changes.get(field_name) is not None:
            setattr(neighborhood, field_name, changes[field_name])
    await db.commit()
    return neighborhood


async def delete_neighborhood(db: AsyncSession, neighborhood_id: int) -> None:
    neighborhood = await db.get(Neighborhood, neighborhood_id)
    if neighborhood is None:
        raise NotFoundError("Neighborhood not found")
    await db.delete(neighborhood)
    await db.commit()


# =============================================================================
# INVITATION CODES
# =============================================================================

async def list_invitation_codes(db: AsyncSession) -> list[InvitationCode]:
    result = await db.execute(select(InvitationCode).order_by(InvitationCode.id))
    return list(result.scalars().all())


async def create_invitation_code(
    db: AsyncSession,
    code: str,
    max_uses: Optional[int] = None,
    description: Optional[str] = None,
    is_active: bool = True,
) -> InvitationCode:
    invitation = InvitationCode(
        code=code.strip().upper(),
        max_uses=max_uses,
        description=description,
        is_active=is_active,
    )
    db.add(invitation)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError(f"Invitation code '{code}' already exists") from None
    return invitation


async def update_invitation_code(db: AsyncSession, code_id: int, changes: Mapping[str, Any]) -> InvitationCode:
    invitation = await db.get(InvitationCode, code_id)
    if invitation is None:
        raise NotFoundError("Invitation code not found")
    for field_name in ("is_active", "max_uses", "description"):
        if field_name in changes:
            setattr(invitation, field_name, changes[field_name])
    await db.commit()
    return invitation


async def delete_invitation_code(db: AsyncSession, code_id: int) -> None:
    invitation = await db.get(InvitationCode, code_id)
    if invitation is None:
        raise NotFoundError("Invitation code not found")
    await db.delete(invitation)
    await db.commit()


# =============================================================================
# WAITLIST
# =============================================================================

async def list_waitlist(db: AsyncSession) -> list[WaitlistEntry]:
    result = await db.execute(select(WaitlistEntry).order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.desc()))
    return list(result.scalars().all())


async def delete_waitlist_entry(db: AsyncSession, entry_id: int) -> None:
    entry = await db.get(WaitlistEntry, entry_id)
    if entry is None:
        raise NotFoundError("Waitlist entry not found")
    await db.delete(entry)
    await db.commit()
