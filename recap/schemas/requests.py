"""Request schemas for the API."""

from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class CreateRecapRequest(BaseModel):
    """Finished recap video posted by a client.

    Fields are optional so a missing one yields the endpoint's own 400
    rather than a schema error.
    """
    model_config = ConfigDict(populate_by_name=True)

    family_id: Optional[str] = Field(default=None, alias="familyId")
    photo_urls: Optional[List[str]] = Field(default=None, alias="photoUrls")
    video_blob: Optional[str] = Field(default=None, alias="videoBlob")  # data:video/webm;base64,...
