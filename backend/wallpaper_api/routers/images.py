from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import PlainTextResponse, Response
from starlette.concurrency import run_in_threadpool

from wallpaper_api.core.errors import bad_request
from wallpaper_api.schemas.image import FavoriteUpdateRequest
from wallpaper_api.services.assets import AssetService, FetchResult, UploadOutcome

router = APIRouter(tags=["images"])

# Registered only when the favorites capability is enabled.
favorites_router = APIRouter(tags=["images"])

# Catches every path/method the routers above do not serve.
fallback_router = APIRouter(include_in_schema=False)

_NOT_MODIFIED_DROP = {"content-type", "content-length", "content-encoding", "content-language", "content-disposition"}


def get_asset_service(request: Request) -> AssetService:
    return request.app.state.asset_service


def _etag_matches(if_none_match: str, etag: str | None) -> bool:
    if not etag:
        return False
    candidates = [c.strip() for c in if_none_match.split(",") if c.strip()]
    if "*" in candidates:
        return True
    bare = etag[2:] if etag.startswith("W/") else etag
    return any((c[2:] if c.startswith("W/") else c) == bare for c in candidates)


def _serve(
    result: FetchResult,
    request: Request,
    background_tasks: BackgroundTasks,
    service: AssetService,
) -> Response:
    if not result.from_cache:
        background_tasks.add_task(service.populate_cache, result.identity, result.response)

    headers = dict(result.response.headers)
    inm = request.headers.get("if-none-match")
    if inm and _etag_matches(inm, headers.get("ETag")):
        kept = {k: v for k, v in headers.items() if k.lower() not in _NOT_MODIFIED_DROP}
        return Response(status_code=304, headers=kept)

    return Response(content=result.response.body, status_code=result.response.status_code, headers=headers)


@router.get("/")
def get_random_image(
    request: Request,
    background_tasks: BackgroundTasks,
    service: AssetService = Depends(get_asset_service),
):
    return _serve(service.fetch(""), request, background_tasks, service)


@router.get("/{key}")
def get_image(
    key: str,
    request: Request,
    background_tasks: BackgroundTasks,
    service: AssetService = Depends(get_asset_service),
):
    return _serve(service.fetch(key), request, background_tasks, service)


@router.put("/{key}")
async def upload_image(
    key: str,
    request: Request,
    service: AssetService = Depends(get_asset_service),
):
    data = await request.body()
    content_type = request.headers.get("content-type") or None
    outcome = await run_in_threadpool(service.upload, key, data, content_type=content_type)
    if outcome == UploadOutcome.exists:
        return PlainTextResponse("Image existed", status_code=202)
    return PlainTextResponse("Image uploaded", status_code=201)


@router.delete("/{key}")
def delete_image(key: str, service: AssetService = Depends(get_asset_service)):
    service.delete(key)
    return PlainTextResponse("Image deleted", status_code=200)


@router.api_route("/", methods=["PUT", "DELETE"], include_in_schema=False)
def missing_key():
    raise bad_request()


@favorites_router.post("/{key}")
async def update_image(
    key: str,
    request: Request,
    service: AssetService = Depends(get_asset_service),
):
    try:
        body = FavoriteUpdateRequest.model_validate(await request.json())
    except ValueError as e:
        raise bad_request("Invalid body") from e

    await run_in_threadpool(service.update, key, body.favorite)
    return PlainTextResponse("Image marked as favorite", status_code=200)


@favorites_router.post("/", include_in_schema=False)
def update_missing_key():
    raise bad_request()


@fallback_router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
)
def method_not_allowed(path: str):
    raise HTTPException(status_code=405, detail="Method Not Allowed")
