from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging

from rq import get_current_job

from wallpaper_api.core.config import settings
from wallpaper_api.services.metadata_index import MetadataIndex
from wallpaper_api.services.storage import ObjectStore, ensure_bucket_exists


log = logging.getLogger(__name__)


def sweep_orphan_objects_job(
    *,
    grace_minutes: int | None = None,
    prefix: str = "",
    store: ObjectStore | None = None,
    index: MetadataIndex | None = None,
    now: datetime | None = None,
) -> dict:
    """Best-effort removal of objects that have no index row.

    An upload that crashed between the object write and the row insert
    leaves such an object behind. Objects younger than the grace period are
    skipped since their upload may still be in flight. Safe to run repeatedly.
    """

    try:
        job = get_current_job()
    except Exception:
        job = None

    if store is None:
        store = ObjectStore()
        ensure_bucket_exists(store.client, store.bucket)
    if index is None:
        from wallpaper_api.db.session import SessionLocal

        index = MetadataIndex(SessionLocal)

    grace = int(grace_minutes if grace_minutes is not None else getattr(settings, "orphan_grace_minutes", 60))
    cutoff = (now or datetime.now(timezone.utc)) - timedelta(minutes=grace)

    scanned = 0
    deleted_objects = 0
    deleted_bytes = 0
    failed = 0

    for obj in store.list_objects(prefix=prefix):
        scanned += 1
        lm = obj.last_modified
        if lm is None:
            continue
        if lm.tzinfo is None:
            lm = lm.replace(tzinfo=timezone.utc)
        if lm > cutoff:
            continue

        if index.get(obj.key) is not None:
            continue

        try:
            store.delete(obj.key)
            deleted_objects += 1
            deleted_bytes += obj.size
        except Exception:
            failed += 1
            log.exception("sweep_orphan_objects_job: delete failed key=%s", obj.key)

    out = {
        "ok": True,
        "prefix": prefix,
        "grace_minutes": grace,
        "cutoff": cutoff.isoformat(),
        "scanned": int(scanned),
        "deleted_objects": int(deleted_objects),
        "deleted_bytes": int(deleted_bytes),
        "failed": int(failed),
    }

    if job is not None:
        try:
            meta = dict(job.meta or {})
            meta.update(out)
            job.meta = meta
            job.save_meta()
        except Exception:
            pass

    log.info(
        "sweep_orphan_objects_job: grace_minutes=%s scanned=%s deleted_objects=%s deleted_bytes=%s failed=%s",
        grace,
        scanned,
        deleted_objects,
        deleted_bytes,
        failed,
    )

    return out
