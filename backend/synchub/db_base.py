"""Declarative base shared by every Sync Hub model."""

from sqlalchemy.orm import declarative_base

Base = declarative_base()
