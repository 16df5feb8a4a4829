from fastapi import APIRouter, HTTPException, Request
import hmac

from wallpaper_api.core.config import settings
from wallpaper_api.core.queue import get_queue
from wallpaper_api.core.redis_client import get_redis
from wallpaper_api.services.orphan_sweep_jobs import sweep_orphan_objects_job

router = APIRouter(tags=["health"])

ORPHAN_SWEEP_LOCK_KEY = "locks:orphan_sweep"


def _require_cron_secret(request: Request) -> None:
    secret = str(getattr(settings, "cron_secret", "") or "").strip()
    if not secret:
        raise HTTPException(status_code=404, detail="not found")

    provided = str(request.headers.get("x-cron-secret") or "").strip()
    if not provided or not hmac.compare_digest(provided, secret):
        raise HTTPException(status_code=403, detail="forbidden")


def enqueue_orphan_sweep() -> dict:
    interval_seconds = max(60, int(getattr(settings, "orphan_sweep_interval_minutes", 60)) * 60)
    lock_ttl = max(60, interval_seconds - 5)

    r = get_redis()
    acquired = r.set(ORPHAN_SWEEP_LOCK_KEY, "1", nx=True, ex=int(lock_ttl))
    if not acquired:
        return {"ok": True, "enqueued": False, "reason": "locked"}

    q = get_queue(str(settings.rq_queue_default))
    job = q.enqueue(
        sweep_orphan_objects_job,
        grace_minutes=int(getattr(settings, "orphan_grace_minutes", 60)),
        job_timeout=60 * 10,
        result_ttl=60 * 60,
        failure_ttl=60 * 60,
    )
    return {"ok": True, "enqueued": True, "job_id": str(job.id)}


@router.get("/health/live")
def live():
    return {"status": "live"}


@router.get("/health/ready")
def ready(request: Request):
    service = request.app.state.asset_service

    try:
        service.index.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail="db not ready") from e

    if service.cache is not None:
        try:
            service.cache.ping()
        except Exception as e:
            raise HTTPException(status_code=503, detail="redis not ready") from e

    try:
        service.store.ping()
    except Exception as e:
        raise HTTPException(status_code=503, detail="s3 not ready") from e

    return {"status": "ready"}


@router.post("/health/cron/orphan-sweep")
def cron_orphan_sweep(request: Request):
    _require_cron_secret(request)
    return enqueue_orphan_sweep()
