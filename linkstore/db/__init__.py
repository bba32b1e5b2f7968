"""
Database package - engine and session management.
"""
from linkstore.db.engine import create_engine_from_url, get_engine, dispose_engine
from linkstore.db.session import (
    create_session_maker,
    get_session_maker,
    get_db_session,
    translate_error,
    create_tables,
    drop_tables
)

__all__ = [
    'create_engine_from_url',
    'get_engine',
    'dispose_engine',
    'create_session_maker',
    'get_session_maker',
    'get_db_session',
    'translate_error',
    'create_tables',
    'drop_tables'
]
