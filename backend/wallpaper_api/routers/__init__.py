from wallpaper_api.routers import health, images

__all__ = [
    "health",
    "images",
]
