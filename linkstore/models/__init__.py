"""
Database models package.
Import all models here so Base.metadata sees every table.
"""
from linkstore.models.base import Base
from linkstore.models.user import User, Account
from linkstore.models.link_request import LinkRequest

__all__ = [
    'Base',
    'User',
    'Account',
    'LinkRequest',
]
