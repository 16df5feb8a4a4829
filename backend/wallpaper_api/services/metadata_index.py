from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from sqlalchemy import delete, func, insert, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from wallpaper_api.core.config import DeleteMode
from wallpaper_api.core.errors import store_error
from wallpaper_api.models.image import Image


log = logging.getLogger(__name__)


def utc_now_iso() -> str:
    # 2024-01-01T00:00:00.000000Z
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class ImageRecord:
    key: str
    alive: bool
    favorite: bool
    create_date: str
    delete_date: str

    @classmethod
    def from_row(cls, row: Image) -> "ImageRecord":
        return cls(
            key=str(row.key),
            alive=bool(row.alive),
            favorite=bool(row.favorite),
            create_date=str(row.create_date or ""),
            delete_date=str(row.delete_date or ""),
        )


class KeyExistsError(Exception):
    """Insert lost a race against another upload of the same key."""


class MetadataIndex:
    """Relational index of images.

    Every method runs exactly one statement in its own transaction; nothing
    here spans the object store.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def get(self, key: str) -> ImageRecord | None:
        try:
            with self._session_factory() as db:
                row = db.scalar(select(Image).where(Image.key == key))
                return ImageRecord.from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            log.error("metadata_index.get failed key=%s: %s", key, e)
            raise store_error() from e

    def random_live(self) -> ImageRecord | None:
        try:
            with self._session_factory() as db:
                row = db.scalar(
                    select(Image).where(Image.alive == True).order_by(func.random()).limit(1)  # noqa: E712
                )
                return ImageRecord.from_row(row) if row is not None else None
        except SQLAlchemyError as e:
            log.error("metadata_index.random_live failed: %s", e)
            raise store_error() from e

    def insert(self, key: str, *, create_date: str | None = None) -> None:
        stmt = insert(Image).values(
            key=key,
            alive=True,
            favorite=False,
            create_date=create_date or utc_now_iso(),
            delete_date="",
        )
        try:
            with self._session_factory() as db:
                db.execute(stmt)
                db.commit()
        except IntegrityError as e:
            raise KeyExistsError(key) from e
        except SQLAlchemyError as e:
            log.error("metadata_index.insert failed key=%s: %s", key, e)
            raise store_error() from e

    def set_favorite(self, key: str, favorite: bool) -> int:
        stmt = update(Image).where(Image.key == key).values(favorite=bool(favorite))
        try:
            with self._session_factory() as db:
                res = db.execute(stmt)
                db.commit()
                return int(res.rowcount or 0)
        except SQLAlchemyError as e:
            log.error("metadata_index.set_favorite failed key=%s: %s", key, e)
            raise store_error() from e

    def delete(self, key: str, mode: DeleteMode, *, delete_date: str | None = None) -> int:
        if mode == DeleteMode.hard:
            stmt = delete(Image).where(Image.key == key)
        else:
            # Only live rows flip, so delete_date is written once.
            stmt = (
                update(Image)
                .where(Image.key == key, Image.alive == True)  # noqa: E712
                .values(alive=False, delete_date=delete_date or utc_now_iso())
            )
        try:
            with self._session_factory() as db:
                res = db.execute(stmt)
                db.commit()
                return int(res.rowcount or 0)
        except SQLAlchemyError as e:
            log.error("metadata_index.delete failed key=%s mode=%s: %s", key, mode.value, e)
            raise store_error() from e

    def ping(self) -> None:
        with self._session_factory() as db:
            db.execute(text("SELECT 1"))
