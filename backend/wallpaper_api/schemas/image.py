from __future__ import annotations

from pydantic import BaseModel, ConfigDict, StrictBool


class FavoriteUpdateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    favorite: StrictBool
