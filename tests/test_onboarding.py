import pytest

from wagba.core.exceptions import ConflictError
from wagba.models import WaitlistReason
from wagba.services import onboarding


@pytest.fixture
def area_and_code():
    async def create(db, max_uses=None, is_active=True):
        await onboarding.create_neighborhood(db, "Zamalek", is_serviced=True)
        await onboarding.create_neighborhood(db, "Sheikh Zayed", is_serviced=False)
        return await onboarding.create_invitation_code(db, "wagba2026", max_uses=max_uses, is_active=is_active)
    return create


class TestPreOnboarding:
    @pytest.mark.asyncio
    async def test_valid_area_and_code(self, db, area_and_code):
        code = await area_and_code(db)

        result = await onboarding.validate_pre_onboarding(db, "Nour@Mail.com", " zamalek ", "Wagba2026")

        assert result.valid is True
        assert result.reason is None
        assert code.current_uses == 1
        assert await onboarding.list_waitlist(db) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("area", ["Sheikh Zayed", "Atlantis"])
    async def test_unserviced_area_is_waitlisted(self, db, area_and_code, area):
        code = await area_and_code(db)

        result = await onboarding.validate_pre_onboarding(db, "Nour@Mail.com", area, "WAGBA2026")

        assert result.valid is False
        assert result.reason == WaitlistReason.AREA_NOT_SERVICED
        assert "waitlist" in result.message
        assert code.current_uses == 0
        entries = await onboarding.list_waitlist(db)
        assert [(e.email, e.neighborhood, e.rejection_reason) for e in entries] == [
            ("nour@mail.com", area, WaitlistReason.AREA_NOT_SERVICED)
        ]

    @pytest.mark.asyncio
    async def test_exhausted_code_is_waitlisted(self, db, area_and_code):
        await area_and_code(db, max_uses=1)

        first = await onboarding.validate_pre_onboarding(db, "a@mail.com", "Zamalek", "WAGBA2026")
        second = await onboarding.validate_pre_onboarding(db, "b@mail.com", "Zamalek", "WAGBA2026")

        assert first.valid is True
        assert second.valid is False
        assert second.reason == WaitlistReason.INVALID_CODE

    @pytest.mark.asyncio
    async def test_inactive_or_unknown_code(self, db, area_and_code):
        await area_and_code(db, is_active=False)

        inactive = await onboarding.validate_pre_onboarding(db, "a@mail.com", "Zamalek", "WAGBA2026")
        unknown = await onboarding.validate_pre_onboarding(db, "a@mail.com", "Zamalek", "NOPE")

        assert inactive.reason == unknown.reason == WaitlistReason.INVALID_CODE
        assert len(await onboarding.list_waitlist(db)) == 2


class TestCatalogs:
    @pytest.mark.asyncio
    async def test_duplicate_neighborhood(self, db):
        await onboarding.create_neighborhood(db, "Maadi", True)
        with pytest.raises(ConflictError):
            await onboarding.create_neighborhood(db, "Maadi", False)

    @pytest.mark.asyncio
    async def test_codes_are_stored_uppercase_and_unique(self, db):
        code = await onboarding.create_invitation_code(db, " launch ")
        assert code.code == "LAUNCH"
        with pytest.raises(ConflictError):
            await onboarding.create_invitation_code(db, "LAUNCH")

    @pytest.mark.asyncio
    async def test_serviced_only_listing(self, db):
        await onboarding.create_neighborhood(db, "Maadi", True)
        await onboarding.create_neighborhood(db, "Obour", False)
        assert [n.name for n in await onboarding.list_neighborhoods(db, serviced_only=True)] == ["Maadi"]
