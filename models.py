from __future__ import annotations

from sqlalchemy import Column, String, Text

from db import Base


class LocalStorageEntry(Base):
    """
    Key/value rows standing in for browser local storage.

    One row holds the whole application state blob (a single JSON document);
    another holds the stored cloud connection settings.
    """

    __tablename__ = "local_storage"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False, default="")
    updatedAt = Column(Text, nullable=False, default="")
