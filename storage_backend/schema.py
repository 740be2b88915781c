"""
Reference tables for the relational backend.

The relational provider addresses tables by name and needs nothing beyond an
``id`` primary key; these are the general-purpose tables the application
uses out of the box.
"""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, Numeric, String, Text, func
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class ProductRow(Base):
    __tablename__ = "products"

    id = Column(Integer, primary_key=True, autoincrement=True)
    image_url = Column(Text, nullable=True)
    name = Column(Text, nullable=False, index=True)
    status = Column(String(16), nullable=False, default="active", server_default="active")
    price = Column(Numeric(10, 2), nullable=True)
    stock = Column(Integer, nullable=False, default=0, server_default="0")
    available_at = Column(DateTime, nullable=True, server_default=func.now())


class SettingRow(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    key = Column(String(255), nullable=False, unique=True)
    value = Column(Text, nullable=True)


def create_schema(engine: Engine) -> None:
    Base.metadata.create_all(engine)
