"""
Tests for linked account storage and token refresh.
"""
import asyncio
import pytest
from datetime import datetime, timedelta, timezone
from sqlalchemy import select

from linkstore.db import create_session_maker
from linkstore.exceptions import ConstraintViolationError, NotFoundError
from linkstore.manager import LinkManager
from linkstore.models import Account
from linkstore.services.encryption import TokenCipher


@pytest.mark.unit
class TestUpsertAccount:
    """Test account creation and replacement."""

    async def test_upsert_creates_account(self, manager, clock):
        await manager.create_user("U1", "DeviceA")
        expires = clock() + timedelta(seconds=3600)

        account = await manager.upsert_account("U1", "alice", "AT1", "RT1", None, expires)

        assert account.user_id == "U1"
        assert account.username == "alice"
        assert account.access_token == "AT1"
        assert account.refresh_token == "RT1"
        assert account.session_token is None
        assert account.expires == expires
        assert account.last_updated == clock()

    async def test_upsert_replaces_existing_account(self, manager, clock, linked_user):
        clock.advance(minutes=5)

        await manager.upsert_account(
            linked_user, "bob", "AT9", "RT9", "S9", clock() + timedelta(hours=2)
        )
        account = await manager.get_account(linked_user)

        assert account.username == "bob"
        assert account.access_token == "AT9"
        assert account.refresh_token == "RT9"
        assert account.session_token == "S9"
        assert account.last_updated == clock()

    async def test_upsert_unknown_user_raises_not_found(self, manager, clock):
        with pytest.raises(NotFoundError):
            await manager.upsert_account("ghost", "alice", "AT1", "RT1", None, clock())

    async def test_upsert_rejects_long_username(self, manager, clock):
        await manager.create_user("U1")

        with pytest.raises(ConstraintViolationError):
            await manager.upsert_account("U1", "a" * 65, "AT1", "RT1", None, clock())

        with pytest.raises(NotFoundError):
            await manager.get_account("U1")

    async def test_upsert_rejects_oversized_token(self, manager, clock):
        await manager.create_user("U1")

        with pytest.raises(ConstraintViolationError):
            await manager.upsert_account("U1", "alice", "x" * 1025, "RT1", None, clock())

    async def test_aware_expiry_is_stored_as_utc(self, manager):
        await manager.create_user("U1")
        expires = datetime(2026, 3, 1, 14, 0, tzinfo=timezone(timedelta(hours=2)))

        account = await manager.upsert_account("U1", "alice", "AT1", "RT1", None, expires)

        assert account.expires == datetime(2026, 3, 1, 12, 0)


@pytest.mark.unit
class TestRefreshAccountTokens:
    """Test token refresh."""

    async def test_refresh_scenario(self, manager, clock):
        """Test upsert, refresh, read back."""
        now = clock()
        await manager.create_user("U1", "DeviceA")
        await manager.upsert_account("U1", "alice", "AT1", "RT1", None, now + timedelta(seconds=3600))

        await manager.refresh_account_tokens("U1", "AT2", "RT2", now + timedelta(seconds=7200))
        account = await manager.get_account("U1")

        assert account.access_token == "AT2"
        assert account.refresh_token == "RT2"
        assert account.expires == now + timedelta(seconds=7200)

    async def test_refresh_keeps_other_fields(self, manager, clock):
        await manager.create_user("U1")
        await manager.upsert_account("U1", "alice", "AT1", "RT1", "S1", clock() + timedelta(hours=1))
        clock.advance(minutes=30)

        account = await manager.refresh_account_tokens("U1", "AT2", "RT2", clock() + timedelta(hours=1))

        assert account.username == "alice"
        assert account.session_token == "S1"
        assert account.last_updated == clock()

    async def test_refresh_is_idempotent(self, manager, clock, linked_user):
        expires = clock() + timedelta(hours=2)

        first = await manager.refresh_account_tokens(linked_user, "AT2", "RT2", expires)
        second = await manager.refresh_account_tokens(linked_user, "AT2", "RT2", expires)

        assert first == second
        assert await manager.get_account(linked_user) == first

    async def test_refresh_without_account_raises_not_found(self, manager, clock):
        await manager.create_user("U1")

        with pytest.raises(NotFoundError):
            await manager.refresh_account_tokens("U1", "AT2", "RT2", clock())

    async def test_concurrent_refreshes_never_mix_fields(self, file_engine, test_settings, clock):
        """Test that concurrent refreshes leave one complete token set."""
        manager = LinkManager(
            session_maker=create_session_maker(file_engine),
            settings=test_settings,
            clock=clock,
        )
        await manager.create_user("U1")
        await manager.upsert_account("U1", "alice", "AT0", "RT0", None, clock())

        candidates = {
            f"AT{i}": (f"RT{i}", clock() + timedelta(minutes=i)) for i in range(1, 9)
        }
        await asyncio.gather(*(
            manager.refresh_account_tokens("U1", access, refresh, expires)
            for access, (refresh, expires) in candidates.items()
        ))

        account = await manager.get_account("U1")
        refresh, expires = candidates[account.access_token]
        assert account.refresh_token == refresh
        assert account.expires == expires


@pytest.mark.unit
class TestAccountLookup:
    """Test reads, expiry checks and unlinking."""

    async def test_get_account_missing_raises_not_found(self, manager):
        with pytest.raises(NotFoundError):
            await manager.get_account("nobody")

    async def test_is_account_expired(self, manager, clock, linked_user):
        assert await manager.is_account_expired(linked_user) is False

        clock.advance(seconds=3599)
        assert await manager.is_account_expired(linked_user) is False

        clock.advance(seconds=1)
        assert await manager.is_account_expired(linked_user) is True

    async def test_delete_account_unlinks(self, manager, linked_user):
        assert await manager.delete_account(linked_user) is True
        assert await manager.delete_account(linked_user) is False

        with pytest.raises(NotFoundError):
            await manager.get_account(linked_user)
        assert (await manager.get_user(linked_user)).id == linked_user

    async def test_update_session_token(self, manager, linked_user):
        account = await manager.update_session_token(linked_user, "session-1")
        assert account.session_token == "session-1"

        account = await manager.update_session_token(linked_user, None)
        assert account.session_token is None
        assert account.access_token == "AT1"

    async def test_update_session_token_without_account(self, manager):
        await manager.create_user("U1")

        with pytest.raises(NotFoundError):
            await manager.update_session_token("U1", "session-1")


@pytest.mark.unit
class TestEncryptedStorage:
    """Test tokens at rest when an encryption key is configured."""

    async def test_tokens_are_encrypted_in_database(
        self, test_session_maker, test_settings, clock, test_encryption_key
    ):
        manager = LinkManager(
            session_maker=test_session_maker,
            settings=test_settings,
            clock=clock,
            cipher=TokenCipher.from_key(test_encryption_key),
        )
        await manager.create_user("U1")
        await manager.upsert_account("U1", "alice", "AT1", "RT1", "S1", clock() + timedelta(hours=1))

        async with test_session_maker() as session:
            stored = (await session.execute(select(Account))).scalar_one()

        assert stored.access_token != "AT1"
        assert stored.refresh_token != "RT1"
        assert stored.session_token != "S1"

        account = await manager.get_account("U1")
        assert account.access_token == "AT1"
        assert account.refresh_token == "RT1"
        assert account.session_token == "S1"
