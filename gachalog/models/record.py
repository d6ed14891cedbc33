from typing import Any

import sqlmodel

from ._base import BaseModel


class Record(BaseModel, table=True):
    """One keyed JSON value in the record store."""

    __tablename__: str = "records"

    key: str = sqlmodel.Field(primary_key=True, max_length=255)
    value: Any = sqlmodel.Field(default=None, sa_column=sqlmodel.Column(sqlmodel.JSON))
    version: int = sqlmodel.Field(default=1, ge=1)
    """Bumped on every write, used for compare-and-set"""
