"""Tests for LifecycleOrchestrator flows and the credential variants."""
import pytest

from fpw_secrets.credentials import Authorization, GrantCredential, VerificationCodeCredential
from fpw_secrets.errors import CredentialInvalid, MessageInvalid, StoreReadError, ValidationError

from conftest import NOW, PHONE, USER_TOKEN, put_code, put_grant


# --- Test Credentials ---

class TestCredentials:
    """Tests that both credential variants yield the same Authorization shape."""

    @pytest.mark.asyncio
    async def test_code_credential(self, orchestrator, codes_store):
        await put_code(codes_store, "1234", NOW + 300)
        auth = await orchestrator.authorize(VerificationCodeCredential(PHONE, "1234"))
        assert auth == Authorization(user_token=USER_TOKEN)

    @pytest.mark.asyncio
    async def test_grant_credential(self, orchestrator, grants_store):
        await put_grant(grants_store, "arid-1", NOW + 600, is_first_time=True)
        auth = await orchestrator.authorize(GrantCredential("arid-1"))
        assert auth.user_token == USER_TOKEN
        assert auth.normalized_application == "myapp"
        assert auth.is_first_time is True

    @pytest.mark.asyncio
    async def test_missing_and_expired_grants_look_the_same(self, orchestrator, grants_store):
        """Test GrantNotFound and GrantExpired both collapse to CredentialInvalid."""
        await put_grant(grants_store, "arid-old", NOW - 1)
        with pytest.raises(CredentialInvalid) as missing:
            await orchestrator.authorize(GrantCredential("nope"))
        with pytest.raises(CredentialInvalid) as expired:
            await orchestrator.authorize(GrantCredential("arid-old"))
        assert missing.value.message == expired.value.message

    def test_code_not_in_repr(self):
        assert "8642" not in repr(VerificationCodeCredential(PHONE, "8642"))


# --- Test Store ---

class TestStoreSecret:
    """Tests for the store flow."""

    @pytest.mark.asyncio
    async def test_valid_code_publishes_store(self, orchestrator, codes_store, publisher):
        await put_code(codes_store, "1234", NOW + 300)
        await orchestrator.store_secret(
            VerificationCodeCredential(PHONE, "1234"), "hunter22", "my app",
        )
        assert len(publisher.messages("fpw-store")) == 1

    @pytest.mark.asyncio
    async def test_wrong_code_publishes_nothing(self, orchestrator, codes_store, publisher):
        await put_code(codes_store, "1234", NOW + 300)
        with pytest.raises(CredentialInvalid):
            await orchestrator.store_secret(
                VerificationCodeCredential(PHONE, "9999"), "hunter22", "my app",
            )
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_grant_scope_wins_over_application(self, orchestrator, grants_store, publisher):
        """Test a grant stores under its own application."""
        await put_grant(grants_store, "arid-1", NOW + 600, application="Bank")
        await orchestrator.store_secret(GrantCredential("arid-1"), "hunter22", "something else")
        [message] = publisher.messages("fpw-store")
        assert message["rawApplication"] == "Bank"
        assert message["normalizedApplication"] == "bank"

    @pytest.mark.asyncio
    async def test_code_credential_needs_application(self, orchestrator, codes_store):
        await put_code(codes_store, "1234", NOW + 300)
        with pytest.raises(ValidationError):
            await orchestrator.store_secret(VerificationCodeCredential(PHONE, "1234"), "hunter22")

    @pytest.mark.asyncio
    async def test_store_with_expired_grant(self, orchestrator, grants_store, publisher):
        await put_grant(grants_store, "arid-old", NOW - 1)
        with pytest.raises(CredentialInvalid):
            await orchestrator.store_secret_with_grant("arid-old", "hunter22")
        assert publisher.published == []


# --- Test Retrieve ---

class TestRetrieveSecret:
    """Tests for the ungated and grant-gated retrieve entry points."""

    @pytest.mark.asyncio
    async def test_direct_retrieve(self, orchestrator, publisher, seeded_secret):
        """Test the direct path needs only the phone."""
        disclosed = await orchestrator.retrieve_secret(PHONE, "my app")
        assert disclosed == seeded_secret
        assert publisher.messages("fpw-retrieve") == [{
            "action": "retrieve",
            "rawApplication": "my app",
            "normalizedApplication": "myapp",
            "userToken": USER_TOKEN,
        }]

    @pytest.mark.asyncio
    async def test_direct_retrieve_normalizes_application(self, orchestrator, seeded_secret):
        disclosed = await orchestrator.retrieve_secret(PHONE, "  MY-APP ")
        assert disclosed["secret"] == "hunter22"

    @pytest.mark.asyncio
    async def test_direct_retrieve_rejects_empty_key(self, orchestrator, resolver):
        """Test a name that normalizes to nothing fails before any lookup."""
        with pytest.raises(MessageInvalid):
            await orchestrator.retrieve_secret(PHONE, "!!")
        assert resolver.calls == []

    @pytest.mark.asyncio
    async def test_direct_retrieve_missing_secret(self, orchestrator, publisher):
        with pytest.raises(StoreReadError):
            await orchestrator.retrieve_secret(PHONE, "my app")
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_grant_retrieve(self, orchestrator, grants_store, seeded_secret):
        await put_grant(grants_store, "arid-1", NOW + 600, application="my app")
        assert await orchestrator.retrieve_secret_with_grant("arid-1") == seeded_secret

    @pytest.mark.asyncio
    async def test_grant_retrieve_unknown_grant(self, orchestrator, seeded_secret):
        with pytest.raises(CredentialInvalid):
            await orchestrator.retrieve_secret_with_grant("nope")


# --- Test Nuke ---

class TestNuke:
    """Tests for the nuke flow."""

    @pytest.mark.asyncio
    async def test_valid_code_emits_nuke(self, orchestrator, codes_store, publisher):
        await put_code(codes_store, "1234", NOW + 300)
        await orchestrator.nuke(VerificationCodeCredential(PHONE, "1234"))
        assert publisher.messages() == [{"action": "nuke", "userToken": USER_TOKEN}]

    @pytest.mark.asyncio
    async def test_invalid_code_emits_nothing(self, orchestrator, codes_store, publisher):
        await put_code(codes_store, "1234", NOW + 300)
        with pytest.raises(CredentialInvalid):
            await orchestrator.nuke(VerificationCodeCredential(PHONE, "0000"))
        assert publisher.published == []

    @pytest.mark.asyncio
    async def test_grant_nuke(self, orchestrator, grants_store, publisher):
        await put_grant(grants_store, "arid-1", NOW + 600)
        await orchestrator.nuke(GrantCredential("arid-1"))
        assert publisher.messages("fpw-nuke") == [{"action": "nuke", "userToken": USER_TOKEN}]

    @pytest.mark.asyncio
    async def test_nuke_does_not_delete_synchronously(
        self, orchestrator, codes_store, userdata_store, seeded_secret,
    ):
        """Test deletion is left to the event consumer."""
        await put_code(codes_store, "1234", NOW + 300)
        await orchestrator.nuke(VerificationCodeCredential(PHONE, "1234"))
        assert len(userdata_store) == 1


# --- Test Send Code / Describe Grant ---

class TestSendCodeAndDescribe:
    """Tests for the remaining entry points."""

    @pytest.mark.asyncio
    async def test_send_code(self, orchestrator, publisher):
        await orchestrator.send_code(PHONE)
        assert publisher.messages("fpw-sendcode") == [
            {"action": "sendCode", "userToken": USER_TOKEN}
        ]

    @pytest.mark.asyncio
    async def test_describe_grant(self, orchestrator, grants_store):
        await put_grant(grants_store, "arid-1", NOW + 600)
        details = await orchestrator.describe_grant("arid-1")
        assert details["rawApplication"] == "My App"
        assert "secret" not in details

    @pytest.mark.asyncio
    async def test_describe_expired_grant(self, orchestrator, grants_store):
        await put_grant(grants_store, "arid-old", NOW - 1)
        with pytest.raises(CredentialInvalid):
            await orchestrator.describe_grant("arid-old")
