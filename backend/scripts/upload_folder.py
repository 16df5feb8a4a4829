from __future__ import annotations

import argparse
import mimetypes
import os
import pathlib
import re
import sys
from urllib.parse import quote

import httpx

# Ensure imports work when running from any CWD and in Docker (/app)
_HERE = pathlib.Path(__file__).resolve()
_BACKEND_ROOT = _HERE.parents[1]
sys.path.insert(0, str(_BACKEND_ROOT))
sys.path.insert(0, "/app")
sys.path.insert(0, os.getcwd())

from wallpaper_api.core.config import settings


IMAGE_SUFFIXES = {".jpg", ".jpeg", ".png", ".webp", ".gif", ".avif", ".bmp"}


def slugify(name: str) -> str:
    s = name.strip().lower()
    s = re.sub(r"[^a-z0-9._-]+", "-", s)
    s = re.sub(r"-+", "-", s).strip("-")
    return s or "image"


def iter_images(folder: pathlib.Path) -> list[pathlib.Path]:
    return sorted(p for p in folder.iterdir() if p.is_file() and p.suffix.lower() in IMAGE_SUFFIXES)


def upload_folder(
    *,
    folder: pathlib.Path,
    base_url: str,
    secret: str,
    header_name: str,
    slug: bool = False,
    client: httpx.Client | None = None,
) -> dict[str, int]:
    counts = {"created": 0, "existed": 0, "failed": 0}
    own_client = client is None
    client = client or httpx.Client(base_url=base_url, timeout=httpx.Timeout(60.0, connect=5.0))
    try:
        for path in iter_images(folder):
            key = slugify(path.name) if slug else path.name
            content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            try:
                r = client.put(
                    f"/{quote(key, safe='')}",
                    content=path.read_bytes(),
                    headers={header_name: secret, "Content-Type": content_type},
                )
            except httpx.HTTPError as e:
                counts["failed"] += 1
                print(f"FAIL {key}: {e}", file=sys.stderr)
                continue

            if r.status_code == 201:
                counts["created"] += 1
                print(f"created {key}")
            elif r.status_code == 202:
                counts["existed"] += 1
                print(f"existed {key}")
            else:
                counts["failed"] += 1
                print(f"FAIL {key}: {r.status_code} {r.text}", file=sys.stderr)
    finally:
        if own_client:
            client.close()
    return counts


def main() -> int:
    ap = argparse.ArgumentParser(description="Upload every image in a folder to the wallpaper API")
    ap.add_argument("folder", type=pathlib.Path)
    ap.add_argument("--base-url", default=settings.api_host)
    ap.add_argument("--secret", default=os.getenv("AUTH_KEY_SECRET") or settings.auth_key_secret)
    ap.add_argument("--slug", action="store_true", help="use a slug of the file name as key")
    args = ap.parse_args()

    if not args.folder.is_dir():
        print(f"not a directory: {args.folder}", file=sys.stderr)
        return 2

    counts = upload_folder(
        folder=args.folder,
        base_url=args.base_url,
        secret=args.secret,
        header_name=settings.auth_header_name,
        slug=bool(args.slug),
    )
    print(f"created={counts['created']} existed={counts['existed']} failed={counts['failed']}")
    return 0 if counts["failed"] == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
