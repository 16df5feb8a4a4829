from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from wallpaper_api.db.base import Base


class Image(Base):
    __tablename__ = "images"

    key: Mapped[str] = mapped_column(String(1024), primary_key=True)

    alive: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    favorite: Mapped[bool] = mapped_column(Boolean, default=False)

    # ISO 8601 strings; delete_date stays "" until the row becomes a tombstone.
    create_date: Mapped[str] = mapped_column(String(40))
    delete_date: Mapped[str] = mapped_column(String(40), default="")
