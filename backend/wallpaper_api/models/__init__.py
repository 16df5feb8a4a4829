from wallpaper_api.models.image import Image

__all__ = [
    "Image",
]
