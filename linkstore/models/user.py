"""
User and linked account models.
"""
from sqlalchemy import Column, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from linkstore.models.base import Base

DEVICE_NAME_MAX_LENGTH = 32
USERNAME_MAX_LENGTH = 64
TOKEN_MAX_LENGTH = 1024


class User(Base):
    """Chat/device identity that can own one linked account."""

    __tablename__ = "user"

    id = Column(String, primary_key=True)
    device_name = Column(String(DEVICE_NAME_MAX_LENGTH), nullable=False)

    account = relationship(
        "Account",
        back_populates="user",
        uselist=False,
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    link_requests = relationship(
        "LinkRequest",
        back_populates="user",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self):
        return f"<User(id='{self.id}', device_name='{self.device_name}')>"


class Account(Base):
    """OAuth credential set bound to exactly one user."""

    __tablename__ = "account"

    user_id = Column(
        String,
        ForeignKey("user.id", ondelete="CASCADE", name="fk_account_user"),
        primary_key=True,
    )
    username = Column(String(USERNAME_MAX_LENGTH), nullable=False)
    access_token = Column(String(TOKEN_MAX_LENGTH), nullable=False)
    refresh_token = Column(String(TOKEN_MAX_LENGTH), nullable=False)
    session_token = Column(String(TOKEN_MAX_LENGTH), nullable=True)
    expires = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="account")

    def __repr__(self):
        return f"<Account(user_id='{self.user_id}', username='{self.username}', expires='{self.expires}')>"
