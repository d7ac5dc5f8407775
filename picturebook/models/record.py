from datetime import datetime, UTC

from sqlalchemy import Column, Text
from sqlmodel import Field, SQLModel


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


class StoreRecord(SQLModel, table=True):
    """键值存储的一条记录（namespace + key 唯一），value 为 JSON 文本"""

    __tablename__ = "store_record"

    namespace: str = Field(primary_key=True, max_length=64)
    key: str = Field(primary_key=True, max_length=255)
    value: str = Field(sa_column=Column(Text, nullable=False))
    updated_at: datetime = Field(default_factory=utcnow)
