"""
Shaadi Mantrana — Registration gate: allow-list and invitations.

An address may register when it has an active, admin-approved allow-list
entry, or when its domain is listed in ``APPROVED_DOMAINS``.  Invitations
carry a unique upper-case code, expire after ``INVITATION_TTL_DAYS`` and are
cancelled after ``INVITATION_MAX_ATTEMPTS`` failed deliveries.  Sending the
e-mail itself is someone else's job; this service only keeps the records.
"""

from __future__ import annotations

import secrets
import string
import uuid
from datetime import timedelta
from typing import Any

import structlog
from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from mantrana.config import Settings, get_settings
from mantrana.errors import ConflictError, NotFoundError, ValidationFailed
from mantrana.models.access import (
    INVITATION_STATUSES,
    PREAPPROVED_STATUSES,
    Invitation,
    PreapprovedEmail,
)
from mantrana.utils.clock import ensure_utc, utcnow

logger = structlog.get_logger("mantrana.access_service")

_CODE_ALPHABET = string.ascii_uppercase + string.digits
_CODE_LENGTH = 8
_TERMINAL_STATUSES = ("accepted", "expired", "cancelled")
_STATUS_TIMESTAMPS = {
    "sent": "sent_at",
    "delivered": "delivered_at",
    "opened": "opened_at",
    "accepted": "accepted_at",
}


def normalise_email(email: str) -> str:
    """Lower-case and validate an address (syntax only, no DNS lookups)."""
    try:
        result = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationFailed(f"Invalid email address: {exc}") from exc
    return result.normalized.lower()


class AccessService:
    """Allow-list and invitation bookkeeping."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()

    # ── Allow-list ────────────────────────────────────────────────────────

    async def add_preapproved(
        self,
        email: str,
        db_session: AsyncSession,
        notes: str | None = None,
        added_by: uuid.UUID | None = None,
    ) -> PreapprovedEmail:
        email = normalise_email(email)
        existing = await self._preapproved(email, db_session)
        if existing is not None:
            raise ConflictError(f"{email} is already on the allow-list.")

        entry = PreapprovedEmail(email=email, notes=notes, added_by=added_by)
        db_session.add(entry)
        await db_session.flush()
        await db_session.refresh(entry)
        logger.info("preapproved_email_added", email=email, added_by=str(added_by))
        return entry

    async def set_preapproved_status(
        self,
        email: str,
        status: str,
        db_session: AsyncSession,
    ) -> PreapprovedEmail:
        """Pause, resume (``active``) or expire an allow-list entry."""
        if status not in PREAPPROVED_STATUSES:
            raise ValidationFailed(f"Unknown allow-list status {status!r}.")
        email = normalise_email(email)
        entry = await self._preapproved(email, db_session)
        if entry is None:
            raise NotFoundError(f"{email} is not on the allow-list.", resource="preapproved_email")

        entry.status = status
        await db_session.flush()
        logger.info("preapproved_status_changed", email=email, status=status)
        return entry

    async def email_status(
        self, email: str, db_session: AsyncSession
    ) -> dict[str, Any]:
        """Explain whether an address may register, and why."""
        email = normalise_email(email)
        entry = await self._preapproved(email, db_session)

        if entry is not None and entry.status == "active" and entry.approved_by_admin:
            return {"email": email, "approved": True, "type": "direct",
                    "reason": "Email is on the allow-list"}

        domain = email.rsplit("@", 1)[-1]
        if domain in self._settings.approved_domains_set:
            return {"email": email, "approved": True, "type": "domain",
                    "reason": f"Domain {domain} is approved"}

        if entry is not None:
            return {"email": email, "approved": False, "type": entry.status,
                    "reason": f"Allow-list entry is {entry.status}"}
        return {"email": email, "approved": False, "type": "not_approved",
                "reason": "Email is not on the allow-list"}

    async def is_email_allowed(self, email: str, db_session: AsyncSession) -> bool:
        return (await self.email_status(email, db_session))["approved"]

    async def record_login(
        self, email: str, db_session: AsyncSession
    ) -> PreapprovedEmail | None:
        """Stamp a successful login on the allow-list entry, if there is one."""
        email = normalise_email(email)
        entry = await self._preapproved(email, db_session)
        if entry is None:
            return None
        entry.is_first_login = False
        entry.last_login_at = utcnow()
        await db_session.flush()
        return entry

    # ── Invitations ───────────────────────────────────────────────────────

    async def create_invitation(
        self,
        email: str,
        db_session: AsyncSession,
        sent_by: uuid.UUID | None = None,
        invitation_type: str = "email",
    ) -> Invitation:
        email = normalise_email(email)
        code = await self._unique_code(db_session)
        invitation = Invitation(
            email=email,
            code=code,
            type=invitation_type,
            sent_by_id=sent_by,
            status="pending",
            attempts=0,
            expires_at=utcnow() + timedelta(days=self._settings.INVITATION_TTL_DAYS),
        )
        db_session.add(invitation)
        await db_session.flush()
        await db_session.refresh(invitation)
        logger.info("invitation_created", email=email, code=code)
        return invitation

    async def mark_invitation(
        self,
        code: str,
        status: str,
        db_session: AsyncSession,
        failure_reason: str | None = None,
    ) -> Invitation:
        """Move an invitation along its lifecycle.

        ``status`` is one of the invitation statuses, or ``failed`` to record
        an unsuccessful delivery attempt.  Reaching a status stamps its
        timestamp once; finished invitations cannot move again.
        """
        invitation = await db_session.scalar(
            select(Invitation).where(Invitation.code == code.strip().upper())
        )
        if invitation is None:
            raise NotFoundError("Invitation not found.", resource="invitation")

        log = logger.bind(code=invitation.code, email=invitation.email)
        if invitation.status in _TERMINAL_STATUSES:
            raise ConflictError(f"Invitation is already {invitation.status}.")

        now = utcnow()
        if status == "failed":
            invitation.attempts += 1
            invitation.last_attempt_at = now
            invitation.failure_reason = failure_reason
            if invitation.attempts >= self._settings.INVITATION_MAX_ATTEMPTS:
                invitation.status = "cancelled"
                log.warning("invitation_cancelled_after_attempts", attempts=invitation.attempts)
            await db_session.flush()
            return invitation

        if status not in INVITATION_STATUSES:
            raise ValidationFailed(f"Unknown invitation status {status!r}.")
        if status in ("opened", "accepted") and ensure_utc(invitation.expires_at) < now:
            raise ConflictError("Invitation has expired.")

        invitation.status = status
        stamp = _STATUS_TIMESTAMPS.get(status)
        if stamp is not None and getattr(invitation, stamp) is None:
            setattr(invitation, stamp, now)
        await db_session.flush()
        log.info("invitation_status_changed", status=status)
        return invitation

    async def expire_invitations(self, db_session: AsyncSession) -> int:
        """Mark every overdue, unfinished invitation as expired."""
        result = await db_session.execute(
            update(Invitation)
            .where(
                Invitation.status.not_in(_TERMINAL_STATUSES),
                Invitation.expires_at < utcnow(),
            )
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        logger.info("invitations_expired", count=result.rowcount)
        return result.rowcount

    # ── Private helpers ──────────────────────────────────────────────────

    async def _preapproved(
        self, email: str, db_session: AsyncSession
    ) -> PreapprovedEmail | None:
        return await db_session.scalar(
            select(PreapprovedEmail).where(PreapprovedEmail.email == email)
        )

    async def _unique_code(self, db_session: AsyncSession) -> str:
        while True:
            code = "".join(secrets.choice(_CODE_ALPHABET) for _ in range(_CODE_LENGTH))
            taken = await db_session.scalar(
                select(Invitation.id).where(Invitation.code == code)
            )
            if taken is None:
                return code
