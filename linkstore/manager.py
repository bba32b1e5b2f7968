"""
Link & token manager.

Mediates every read and write of users, linked accounts and link requests.
Each public operation runs in exactly one transaction; a failure leaves all
three tables unchanged.
"""
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from linkstore.config import Settings, settings as default_settings
from linkstore.db import get_db_session
from linkstore.exceptions import (
    ConfigurationError,
    ConstraintViolationError,
    ExpiredError,
    NotFoundError,
    RefreshTokenError,
)
from linkstore.logging_config import LogContext, get_logger
from linkstore.models import Account, LinkRequest, User
from linkstore.models.user import DEVICE_NAME_MAX_LENGTH, TOKEN_MAX_LENGTH, USERNAME_MAX_LENGTH
from linkstore.monitoring import link_requests_swept_total, track_operation
from linkstore.schemas import AccountRecord, LinkRequestRecord, UserRecord
from linkstore.services.encryption import TokenCipher
from linkstore.services.oauth import OAuthTokenRefresher, TokenRefresher
from linkstore.utils import Clock, generate_token, to_naive_utc, utcnow

logger = get_logger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _check_length(field: str, value: Optional[str], limit: int) -> None:
    if value is not None and len(value) > limit:
        raise ConstraintViolationError(f"{field} exceeds {limit} characters")


class LinkManager:
    """Owns creation, validation, expiry and refresh of link and OAuth tokens."""

    def __init__(
        self,
        session_maker: Optional[async_sessionmaker] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        cipher: Optional[TokenCipher] = None,
        refresher: Optional[TokenRefresher] = None,
    ):
        """
        Args:
            session_maker: Session factory (default: process-wide engine from settings)
            settings: Configuration (default: global settings)
            clock: Source of "now"; every expiry comparison goes through it
            cipher: Token encryption (default: built from settings.encryption_key)
            refresher: OAuth refresh client used by get_access_token (default: built
                from the OAuth settings when they are complete)
        """
        self.session_maker = session_maker
        self.settings = settings or default_settings
        self.clock = clock or utcnow
        self.cipher = cipher or TokenCipher(self.settings.cipher)
        if refresher is None and self.settings.is_oauth_configured:
            refresher = OAuthTokenRefresher.from_settings(self.settings, clock=self.clock)
        self.refresher = refresher

    def _session(self):
        return get_db_session(self.session_maker)

    def _now(self) -> datetime:
        return to_naive_utc(self.clock())

    async def _require_user(self, session: AsyncSession, user_id: str) -> None:
        result = await session.execute(select(User.id).where(User.id == user_id))
        if result.scalar_one_or_none() is None:
            raise NotFoundError(f"User {user_id} not found", entity="user", key=user_id)

    def _to_record(self, account: Account) -> AccountRecord:
        return AccountRecord(
            user_id=account.user_id,
            username=account.username,
            access_token=self.cipher.decrypt(account.access_token),
            refresh_token=self.cipher.decrypt(account.refresh_token),
            session_token=self.cipher.decrypt(account.session_token),
            expires=account.expires,
            last_updated=account.last_updated,
        )

    def _device_name(self, device_name: Optional[str]) -> str:
        if device_name is None:
            device_name = self.settings.default_device_name
        _check_length("device_name", device_name, DEVICE_NAME_MAX_LENGTH)
        return device_name

    def _encrypt_token(self, field: str, token: Optional[str]) -> Optional[str]:
        stored = self.cipher.encrypt(token)
        _check_length(field, stored, TOKEN_MAX_LENGTH)
        return stored

    async def _load_account(self, session: AsyncSession, user_id: str) -> Account:
        result = await session.execute(
            select(Account)
            .where(Account.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        if account is None:
            raise NotFoundError(f"No account linked for user {user_id}", entity="account", key=user_id)
        return account

    # User operations

    @track_operation("create_user")
    async def create_user(self, user_id: str, device_name: Optional[str] = None) -> UserRecord:
        """
        Register a new user.

        Raises:
            ConstraintViolationError: A user with this id already exists
        """
        device_name = self._device_name(device_name)

        async with self._session() as session:
            session.add(User(id=user_id, device_name=device_name))
            await session.flush()

        logger.info("user_created", user_id=user_id)
        return UserRecord(id=user_id, device_name=device_name)

    @track_operation("get_user")
    async def get_user(self, user_id: str) -> UserRecord:
        async with self._session() as session:
            user = await session.get(User, user_id)
            if user is None:
                raise NotFoundError(f"User {user_id} not found", entity="user", key=user_id)
            return UserRecord.model_validate(user)

    async def get_or_create_user(self, user_id: str, device_name: Optional[str] = None) -> UserRecord:
        """Return the user, registering it first if it does not exist yet."""
        device_name = self._device_name(device_name)
        try:
            return await self.get_user(user_id)
        except NotFoundError:
            pass
        try:
            return await self.create_user(user_id, device_name)
        except ConstraintViolationError:
            # Registered concurrently
            return await self.get_user(user_id)

    @track_operation("update_device_name")
    async def update_device_name(self, user_id: str, device_name: str) -> UserRecord:
        _check_length("device_name", device_name, DEVICE_NAME_MAX_LENGTH)

        async with self._session() as session:
            result = await session.execute(
                update(User)
                .where(User.id == user_id)
                .values(device_name=device_name)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found", entity="user", key=user_id)

        return UserRecord(id=user_id, device_name=device_name)

    @track_operation("delete_user")
    async def delete_user(self, user_id: str) -> None:
        """
        Delete a user together with its account and link requests.

        Dependents are removed explicitly before the parent so the cascade
        holds on engines without foreign-key enforcement.
        """
        async with self._session() as session:
            requests = await session.execute(
                delete(LinkRequest)
                .where(LinkRequest.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            accounts = await session.execute(
                delete(Account)
                .where(Account.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            users = await session.execute(
                delete(User)
                .where(User.id == user_id)
                .execution_options(synchronize_session=False)
            )
            if users.rowcount == 0:
                raise NotFoundError(f"User {user_id} not found", entity="user", key=user_id)
            removed = {"accounts_removed": accounts.rowcount, "link_requests_removed": requests.rowcount}

        logger.info("user_deleted", user_id=user_id, **removed)

    # Account operations

    @track_operation("upsert_account")
    async def upsert_account(
        self,
        user_id: str,
        username: str,
        access_token: str,
        refresh_token: str,
        session_token: Optional[str],
        expires: datetime,
    ) -> AccountRecord:
        """
        Create or replace the account linked to a user in one write.

        Raises:
            NotFoundError: The user does not exist
            ConstraintViolationError: A value exceeds its column limit
        """
        _check_length("username", username, USERNAME_MAX_LENGTH)
        now = self._now()
        values = {
            "user_id": user_id,
            "username": username,
            "access_token": self._encrypt_token("access_token", access_token),
            "refresh_token": self._encrypt_token("refresh_token", refresh_token),
            "session_token": self._encrypt_token("session_token", session_token),
            "expires": to_naive_utc(expires),
            "last_updated": now,
        }

        async with self._session() as session:
            await self._require_user(session, user_id)

            insert = _UPSERT_DIALECTS.get(session.get_bind().dialect.name)
            if insert is not None:
                stmt = insert(Account).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=[Account.user_id],
                    set_={key: stmt.excluded[key] for key in values if key != "user_id"},
                )
                await session.execute(stmt)
            else:
                account = await session.get(Account, user_id, with_for_update=True)
                if account is None:
                    session.add(Account(**values))
                else:
                    for key, value in values.items():
                        setattr(account, key, value)
            account = await self._load_account(session, user_id)
            record = self._to_record(account)

        logger.info("account_linked", user_id=user_id, username=username, expires=record.expires.isoformat())
        return record

    @track_operation("refresh_account_tokens")
    async def refresh_account_tokens(
        self,
        user_id: str,
        access_token: str,
        refresh_token: str,
        expires: datetime,
    ) -> AccountRecord:
        """
        Replace the token fields of an existing account.

        The tokens, expiry and last_updated change in a single UPDATE, so a
        concurrent reader sees either the old or the new set, never a mix.

        Raises:
            NotFoundError: No account is linked to the user
        """
        now = self._now()
        values = {
            "access_token": self._encrypt_token("access_token", access_token),
            "refresh_token": self._encrypt_token("refresh_token", refresh_token),
            "expires": to_naive_utc(expires),
            "last_updated": now,
        }

        async with self._session() as session:
            result = await session.execute(
                update(Account)
                .where(Account.user_id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"No account linked for user {user_id}", entity="account", key=user_id)
            account = await self._load_account(session, user_id)
            record = self._to_record(account)

        logger.info("account_tokens_refreshed", user_id=user_id, expires=record.expires.isoformat())
        return record

    @track_operation("get_account")
    async def get_account(self, user_id: str) -> AccountRecord:
        async with self._session() as session:
            account = await self._load_account(session, user_id)
            return self._to_record(account)

    async def is_account_expired(self, user_id: str) -> bool:
        """True once the stored access token has reached its expiry."""
        account = await self.get_account(user_id)
        return account.is_expired(self._now())

    @track_operation("delete_account")
    async def delete_account(self, user_id: str) -> bool:
        """
        Unlink the account of a user.

        Returns:
            True if an account was removed, False if none was linked
        """
        async with self._session() as session:
            result = await session.execute(
                delete(Account)
                .where(Account.user_id == user_id)
                .execution_options(synchronize_session=False)
            )
            deleted = result.rowcount > 0

        if deleted:
            logger.info("account_unlinked", user_id=user_id)
        return deleted

    @track_operation("update_session_token")
    async def update_session_token(self, user_id: str, session_token: Optional[str]) -> AccountRecord:
        stored = self._encrypt_token("session_token", session_token)

        async with self._session() as session:
            result = await session.execute(
                update(Account)
                .where(Account.user_id == user_id)
                .values(session_token=stored)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise NotFoundError(f"No account linked for user {user_id}", entity="account", key=user_id)
            account = await self._load_account(session, user_id)
            return self._to_record(account)

    # Link request operations

    @track_operation("create_link_request")
    async def create_link_request(self, user_id: str) -> LinkRequestRecord:
        """
        Issue a single-use link token for a user.

        A token that collides with an existing one is replaced by a fresh
        token and the insert retried.

        Raises:
            NotFoundError: The user does not exist
            ConstraintViolationError: No unique token after the configured attempts
        """
        attempts = self.settings.token_generation_attempts
        ttl = timedelta(seconds=self.settings.link_request_ttl_seconds)

        for attempt in range(1, attempts + 1):
            token = generate_token(self.settings.token_length)
            expires = self._now() + ttl
            try:
                async with self._session() as session:
                    await self._require_user(session, user_id)
                    session.add(LinkRequest(token=token, user_id=user_id, expires=expires))
            except ConstraintViolationError:
                logger.warning("link_token_collision", user_id=user_id, attempt=attempt)
                continue

            logger.info("link_request_created", user_id=user_id, expires=expires.isoformat())
            return LinkRequestRecord(token=token, user_id=user_id, expires=expires)

        raise ConstraintViolationError(
            f"Could not generate a unique link token after {attempts} attempts"
        )

    @track_operation("resolve_link_request")
    async def resolve_link_request(self, token: str, consume: bool = True) -> str:
        """
        Look up the user a link token was issued to.

        Args:
            token: Link token presented by the caller
            consume: Delete the token in the same transaction (single use)

        Returns:
            The owning user id

        Raises:
            NotFoundError: Unknown or already consumed token
            ExpiredError: Token exists but is past its expiry
        """
        now = self._now()

        async with self._session() as session:
            stmt = select(LinkRequest).where(LinkRequest.token == token)
            if consume:
                stmt = stmt.with_for_update()
            request = (await session.execute(stmt)).scalar_one_or_none()

            if request is None:
                raise NotFoundError("Link request not found", entity="link_request")
            if request.is_expired(now):
                raise ExpiredError("Link request has expired", expires=request.expires)

            user_id = request.user_id
            if consume:
                result = await session.execute(
                    delete(LinkRequest)
                    .where(LinkRequest.token == token)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    # Consumed by a concurrent caller
                    raise NotFoundError("Link request not found", entity="link_request")

        logger.info("link_request_resolved", user_id=user_id, consumed=consume)
        return user_id

    @track_operation("get_link_request")
    async def get_link_request(self, user_id: str) -> LinkRequestRecord:
        """Return the newest pending link request of a user."""
        now = self._now()

        async with self._session() as session:
            result = await session.execute(
                select(LinkRequest)
                .where(LinkRequest.user_id == user_id, LinkRequest.expires > now)
                .order_by(LinkRequest.expires.desc())
                .limit(1)
            )
            request = result.scalar_one_or_none()
            if request is None:
                raise NotFoundError(
                    f"No pending link request for user {user_id}", entity="link_request", key=user_id
                )
            return LinkRequestRecord.model_validate(request)

    @track_operation("sweep_expired_link_requests")
    async def sweep_expired_link_requests(self, now: Optional[datetime] = None) -> int:
        """
        Delete every link request whose expiry is at or before ``now``.

        Returns:
            Number of rows removed
        """
        now = to_naive_utc(now) if now is not None else self._now()

        async with self._session() as session:
            result = await session.execute(
                delete(LinkRequest)
                .where(LinkRequest.expires <= now)
                .execution_options(synchronize_session=False)
            )
            count = result.rowcount

        link_requests_swept_total.inc(count)
        logger.info("link_requests_swept", count=count, cutoff=now.isoformat())
        return count

    # Special operations

    async def get_access_token(self, user_id: str) -> str:
        """
        Return a usable access token for the user's linked account.

        A token that expires within the refresh offset is renewed through the
        refresher and stored. If the provider rejects the refresh token the
        account is unlinked and the user has to link again.

        Raises:
            NotFoundError: No account is linked
            RefreshTokenError: Provider rejected the refresh token (account removed)
            ConfigurationError: Refresh needed but no refresher configured
        """
        with LogContext(user_id=user_id):
            account = await self.get_account(user_id)
            now = self._now()
            offset = timedelta(seconds=self.settings.token_refresh_offset_seconds)
            if not account.is_expired(now, offset):
                return account.access_token

            if self.refresher is None:
                raise ConfigurationError("Access token expired and no token refresher is configured")

            try:
                grant = await self.refresher.refresh(account.refresh_token, now=now)
            except RefreshTokenError:
                await self.delete_account(user_id)
                logger.warning("account_unlinked_after_refresh_failure")
                raise

            refreshed = await self.refresh_account_tokens(
                user_id,
                grant.access_token,
                grant.refresh_token or account.refresh_token,
                grant.expires,
            )
            return refreshed.access_token
