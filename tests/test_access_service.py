"""Tests for AccessService — allow-list and invitation bookkeeping."""
import re
from datetime import timedelta

import pytest

from mantrana.errors import ConflictError, NotFoundError, ValidationFailed
from mantrana.services.access_service import AccessService, normalise_email
from mantrana.utils.clock import utcnow


@pytest.fixture
def access(settings):
    return AccessService(settings=settings)


class TestNormaliseEmail:

    def test_lower_cases(self):
        assert normalise_email("  Priya.Sharma@GMAIL.com ") == "priya.sharma@gmail.com"

    @pytest.mark.parametrize("bad", ["", "not-an-email", "a@", "@gmail.com", "two@@gmail.com"])
    def test_rejects_malformed(self, bad):
        with pytest.raises(ValidationFailed):
            normalise_email(bad)


class TestAllowList:

    async def test_direct_approval(self, db, access):
        entry = await access.add_preapproved("Kavya@Yahoo.com", db, notes="referral")

        assert entry.email == "kavya@yahoo.com"
        assert entry.status == "active"
        assert entry.approved_by_admin is True
        assert entry.is_first_login is True
        assert entry.user_uuid is not None

        status = await access.email_status("kavya@yahoo.com", db)
        assert status["approved"] is True
        assert status["type"] == "direct"

    async def test_duplicate_rejected(self, db, access):
        await access.add_preapproved("rohan@outlook.com", db)
        with pytest.raises(ConflictError):
            await access.add_preapproved("ROHAN@outlook.com", db)

    async def test_domain_approval(self, db, access):
        status = await access.email_status("staff@shaadimantrana.in", db)
        assert status["approved"] is True
        assert status["type"] == "domain"

    async def test_unknown_address(self, db, access):
        status = await access.email_status("stranger@gmail.com", db)
        assert status == {
            "email": "stranger@gmail.com",
            "approved": False,
            "type": "not_approved",
            "reason": "Email is not on the allow-list",
        }
        assert await access.is_email_allowed("stranger@gmail.com", db) is False

    async def test_paused_entry_blocks(self, db, access):
        await access.add_preapproved("meera@gmail.com", db)
        await access.set_preapproved_status("meera@gmail.com", "paused", db)

        status = await access.email_status("meera@gmail.com", db)
        assert status["approved"] is False
        assert status["type"] == "paused"

        await access.set_preapproved_status("meera@gmail.com", "active", db)
        assert await access.is_email_allowed("meera@gmail.com", db) is True

    async def test_status_change_validation(self, db, access):
        with pytest.raises(NotFoundError):
            await access.set_preapproved_status("nobody@gmail.com", "paused", db)
        await access.add_preapproved("anil@gmail.com", db)
        with pytest.raises(ValidationFailed):
            await access.set_preapproved_status("anil@gmail.com", "deleted", db)

    async def test_record_login(self, db, access):
        await access.add_preapproved("divya@gmail.com", db)
        entry = await access.record_login("Divya@gmail.com", db)

        assert entry.is_first_login is False
        assert entry.last_login_at is not None
        assert await access.record_login("unknown@gmail.com", db) is None


class TestInvitations:

    async def test_create(self, db, access):
        invitation = await access.create_invitation("Neha@gmail.com", db)

        assert invitation.email == "neha@gmail.com"
        assert invitation.status == "pending"
        assert re.fullmatch(r"[A-Z0-9]{8}", invitation.code)
        assert invitation.attempts == 0

    async def test_codes_are_unique(self, db, access):
        codes = {(await access.create_invitation("neha@gmail.com", db)).code for _ in range(20)}
        assert len(codes) == 20

    async def test_lifecycle_stamps_once(self, db, access):
        invitation = await access.create_invitation("neha@gmail.com", db)

        sent = await access.mark_invitation(invitation.code, "sent", db)
        first_sent_at = sent.sent_at
        assert first_sent_at is not None

        await access.mark_invitation(invitation.code.lower(), "sent", db)
        assert invitation.sent_at == first_sent_at

        for status in ("delivered", "opened", "accepted"):
            await access.mark_invitation(invitation.code, status, db)
        assert invitation.status == "accepted"
        assert invitation.accepted_at is not None

        with pytest.raises(ConflictError):
            await access.mark_invitation(invitation.code, "opened", db)

    async def test_failed_attempts_cancel(self, db, access):
        invitation = await access.create_invitation("neha@gmail.com", db)
        for _ in range(2):
            await access.mark_invitation(invitation.code, "failed", db, failure_reason="bounced")
        assert invitation.status == "pending"
        assert invitation.attempts == 2

        await access.mark_invitation(invitation.code, "failed", db, failure_reason="bounced")
        assert invitation.status == "cancelled"
        assert invitation.failure_reason == "bounced"

    async def test_expired_cannot_be_opened(self, db, access):
        invitation = await access.create_invitation("neha@gmail.com", db)
        invitation.expires_at = utcnow() - timedelta(days=1)
        await db.flush()

        with pytest.raises(ConflictError):
            await access.mark_invitation(invitation.code, "opened", db)

    async def test_unknown_code_and_status(self, db, access):
        with pytest.raises(NotFoundError):
            await access.mark_invitation("NOPE1234", "sent", db)
        invitation = await access.create_invitation("neha@gmail.com", db)
        with pytest.raises(ValidationFailed):
            await access.mark_invitation(invitation.code, "lost", db)

    async def test_expire_invitations(self, db, access):
        overdue = await access.create_invitation("old@gmail.com", db)
        await access.create_invitation("fresh@gmail.com", db)
        done = await access.create_invitation("done@gmail.com", db)
        await access.mark_invitation(done.code, "accepted", db)
        overdue.expires_at = utcnow() - timedelta(days=1)
        done.expires_at = utcnow() - timedelta(days=1)
        await db.flush()

        assert await access.expire_invitations(db) == 1
