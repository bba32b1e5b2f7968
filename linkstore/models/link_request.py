"""
Pending account-link request model.
"""
from datetime import datetime
from sqlalchemy import Column, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship

from linkstore.models.base import Base


class LinkRequest(Base):
    """Short-lived, single-use token authorizing a pending link."""

    __tablename__ = "link_request"

    token = Column(Text, primary_key=True)
    user_id = Column(
        Text,
        ForeignKey("user.id", ondelete="CASCADE", name="fk_link_request_user"),
        nullable=False,
    )
    expires = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="link_requests")

    # Cleanup and per-user lookups
    __table_args__ = (
        Index("idx_link_request_user_id", "user_id"),
        Index("idx_link_request_expires", "expires"),
    )

    def is_expired(self, now: datetime) -> bool:
        """A token is valid only strictly before its expiry."""
        return now >= self.expires

    def __repr__(self):
        return f"<LinkRequest(token='{self.token[:8]}...', user_id='{self.user_id}', expires='{self.expires}')>"
