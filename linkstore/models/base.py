"""
Declarative base shared by all models.
"""
from sqlalchemy import MetaData
from sqlalchemy.orm import declarative_base

# Base class for models
Base = declarative_base(metadata=MetaData())
