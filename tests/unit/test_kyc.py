"""Unit tests for KYC submission and review."""

from uuid import uuid4

import pytest

from src.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    ValidationFailedError,
)
from src.models.schemas import DocumentType, KycStatus
from src.services.kyc import (
    approve_verification,
    document_number_for,
    get_my_verification,
    kyc_stats,
    list_verifications,
    reject_verification,
    submit_verification,
)
from src.services.storage import StorageService


def _verification(user_id, status="pending", created_at="2024-05-01T10:00:00+00:00", **extra) -> dict:
    return {
        "id": str(uuid4()),
        "user_id": str(user_id),
        "document_type": "passport",
        "document_number": "passport-1700000000000",
        "status": status,
        "created_at": created_at,
        **extra,
    }


class TestSubmitVerification:
    """Test document submission rules."""

    async def _submit(self, fake_supabase, user, **kwargs):
        params = {
            "document_type": DocumentType.PASSPORT,
            "content": b"%PDF-1.4 fake",
            "content_type": "application/pdf",
            "agreement_accepted": True,
        }
        params.update(kwargs)
        return await submit_verification(
            fake_supabase, StorageService(fake_supabase), user, **params
        )

    @pytest.mark.asyncio
    async def test_submission_creates_pending_verification(self, fake_supabase, regular_user):
        verification = await self._submit(fake_supabase, regular_user)

        assert verification.status == KycStatus.PENDING
        assert verification.user_id == regular_user.id
        assert verification.document_number.startswith("passport-")
        assert verification.document_image_url.startswith(
            "https://fake.supabase.co/storage/v1/object/public/kyc/kyc/"
        )
        assert len(fake_supabase.rows("kyc_verifications")) == 1

    @pytest.mark.asyncio
    async def test_submission_falls_back_to_direct_insert(self, fake_supabase, regular_user):
        await self._submit(fake_supabase, regular_user)

        assert fake_supabase.rpc_calls[0][0] == "insert_kyc_verification"
        assert ("kyc_verifications", "insert") in fake_supabase.calls

    @pytest.mark.asyncio
    async def test_submission_records_activity(self, fake_supabase, regular_user):
        await self._submit(fake_supabase, regular_user)

        activities = fake_supabase.rows("activities")
        assert activities[0]["activity_type"] == "kyc"
        assert activities[0]["user_id"] == str(regular_user.id)

    @pytest.mark.asyncio
    async def test_agreement_required(self, fake_supabase, regular_user):
        with pytest.raises(ValidationFailedError) as exc_info:
            await self._submit(fake_supabase, regular_user, agreement_accepted=False)

        assert exc_info.value.field == "agreement_accepted"
        assert fake_supabase.storage.objects == {}

    @pytest.mark.asyncio
    async def test_unsupported_file_type_rejected(self, fake_supabase, regular_user):
        with pytest.raises(ValidationFailedError):
            await self._submit(fake_supabase, regular_user, content_type="text/plain")

    @pytest.mark.asyncio
    async def test_empty_file_rejected(self, fake_supabase, regular_user):
        with pytest.raises(ValidationFailedError):
            await self._submit(fake_supabase, regular_user, content=b"")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["pending", "approved"])
    async def test_open_or_approved_verification_blocks_resubmission(
        self, fake_supabase, regular_user, status
    ):
        fake_supabase.seed("kyc_verifications", [_verification(regular_user.id, status)])

        with pytest.raises(ConflictError):
            await self._submit(fake_supabase, regular_user)

    @pytest.mark.asyncio
    async def test_resubmission_allowed_after_rejection(self, fake_supabase, regular_user):
        fake_supabase.seed(
            "kyc_verifications",
            [_verification(regular_user.id, "rejected", rejection_reason="Blurry photo")],
        )

        verification = await self._submit(fake_supabase, regular_user)

        assert verification.status == KycStatus.PENDING
        latest = get_my_verification(fake_supabase, regular_user)
        assert latest.id == verification.id


class TestReview:
    """Test the pending -> approved/rejected state machine."""

    @pytest.mark.asyncio
    async def test_approve_pending(self, fake_supabase, admin_user):
        row = fake_supabase.seed("kyc_verifications", [_verification(uuid4())])[0]

        verification = await approve_verification(fake_supabase, admin_user, row["id"])

        assert verification.status == KycStatus.APPROVED
        assert verification.processed_at is not None
        assert verification.rejection_reason is None

    @pytest.mark.asyncio
    async def test_reject_stores_reason(self, fake_supabase, admin_user):
        row = fake_supabase.seed("kyc_verifications", [_verification(uuid4())])[0]

        verification = await reject_verification(
            fake_supabase, admin_user, row["id"], "  Document expired  "
        )

        assert verification.status == KycStatus.REJECTED
        assert verification.rejection_reason == "Document expired"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("reason", ["", "   "])
    async def test_reject_requires_reason(self, fake_supabase, admin_user, reason):
        row = fake_supabase.seed("kyc_verifications", [_verification(uuid4())])[0]

        with pytest.raises(ValidationFailedError):
            await reject_verification(fake_supabase, admin_user, row["id"], reason)

        assert fake_supabase.rows("kyc_verifications")[0]["status"] == "pending"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", ["approved", "rejected"])
    async def test_decided_verification_is_terminal(self, fake_supabase, admin_user, status):
        row = fake_supabase.seed("kyc_verifications", [_verification(uuid4(), status)])[0]

        with pytest.raises(InvalidTransitionError) as exc_info:
            await approve_verification(fake_supabase, admin_user, row["id"])

        assert exc_info.value.current == status
        assert fake_supabase.rows("kyc_verifications")[0]["status"] == status

    @pytest.mark.asyncio
    async def test_unknown_verification(self, fake_supabase, admin_user):
        with pytest.raises(NotFoundError):
            await approve_verification(fake_supabase, admin_user, uuid4())

    @pytest.mark.asyncio
    async def test_decision_is_logged(self, fake_supabase, admin_user):
        row = fake_supabase.seed("kyc_verifications", [_verification(uuid4())])[0]

        await approve_verification(fake_supabase, admin_user, row["id"])

        descriptions = [a["description"] for a in fake_supabase.rows("activities")]
        assert any(d.startswith("Approved KYC verification") for d in descriptions)


class TestListing:
    """Test the admin review list and counts."""

    @pytest.fixture
    def seeded(self, fake_supabase):
        ada, bola = uuid4(), uuid4()
        fake_supabase.seed("users", [
            {"id": str(ada), "full_name": "Ada Obi", "email": "ada@example.com"},
            {"id": str(bola), "full_name": "Bola Eze", "email": "bola@example.com"},
        ])
        fake_supabase.seed("kyc_verifications", [
            _verification(ada, "pending", "2024-05-03T10:00:00+00:00"),
            _verification(bola, "approved", "2024-05-02T10:00:00+00:00", document_type="national_id"),
            _verification(bola, "rejected", "2024-05-01T10:00:00+00:00"),
        ])
        return fake_supabase

    def test_list_enriches_with_user(self, seeded):
        verifications, total = list_verifications(seeded)

        assert total == 3
        assert verifications[0].user_name == "Ada Obi"
        assert verifications[0].user_email == "ada@example.com"

    def test_list_filters_status_and_type(self, seeded):
        pending, _ = list_verifications(seeded, status=KycStatus.PENDING)
        national, _ = list_verifications(seeded, document_type="national_id")

        assert len(pending) == 1
        assert len(national) == 1
        assert national[0].user_name == "Bola Eze"

    def test_search_matches_name_or_email(self, seeded):
        by_name, total = list_verifications(seeded, search="bola")
        by_email, _ = list_verifications(seeded, search="ADA@EXAMPLE")

        assert total == 2
        assert {v.user_name for v in by_name} == {"Bola Eze"}
        assert len(by_email) == 1

    def test_pagination(self, seeded):
        page, total = list_verifications(seeded, limit=1, offset=1)

        assert total == 3
        assert len(page) == 1
        assert page[0].status == KycStatus.APPROVED

    @pytest.mark.asyncio
    async def test_stats_counts_per_status(self, seeded):
        stats = await kyc_stats(seeded)

        assert stats.total == 3
        assert stats.pending == 1
        assert stats.approved == 1
        assert stats.rejected == 1
        assert stats.has_errors is False

    @pytest.mark.asyncio
    async def test_stats_failure_reads_as_zero(self, fake_supabase):
        fake_supabase.fail_table("kyc_verifications")

        stats = await kyc_stats(fake_supabase)

        assert stats.total == 0
        assert stats.has_errors is True


def test_document_number_prefix():
    assert document_number_for(DocumentType.VOTER_CARD).startswith("voter_card-")
