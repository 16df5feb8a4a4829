from __future__ import annotations

import hmac
import re

from starlette.requests import Request

from wallpaper_api.core.config import settings

# "/" and "/{key}"; anything deeper is outside the asset surface.
_ASSET_PATH_RE = re.compile(r"^/[^/]*$")


def is_asset_path(path: str) -> bool:
    return bool(_ASSET_PATH_RE.match(path or ""))


def has_valid_header(request: Request, *, secret: str | None = None) -> bool:
    expected = str(secret if secret is not None else settings.auth_key_secret or "")
    provided = request.headers.get(settings.auth_header_name)
    if not expected or provided is None:
        return False
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))
