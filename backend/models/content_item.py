from sqlalchemy import String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class ContentItem(Base, TimestampMixin):
    __tablename__ = "content_items"
    __table_args__ = (UniqueConstraint("item_type", "char"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    item_type: Mapped[str] = mapped_column(String(20), nullable=False)  # radical, character
    char: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    pinyin: Mapped[str | None] = mapped_column(String(100), nullable=True)
    meaning: Mapped[str | None] = mapped_column(String(500), nullable=True)
