from typing import Optional

from pydantic import BaseModel, Field, validator

from socialdl.models.internal import OutputFormat


class UrlRequest(BaseModel):
    url: Optional[str] = Field(None, description="Social media page URL")

    @validator('url')
    def strip_url(cls, v):
        """Blank URLs are treated as missing (route reports "URL is required")"""
        if v is None:
            return None
        return v.strip() or None


class DownloadRequest(UrlRequest):
    platform: Optional[str] = Field(None, description="Platform tag; classified from the URL when omitted")
    format: OutputFormat = Field(OutputFormat.MP4, description="Output container (mp4 or mp3)")
    quality: Optional[str] = Field(None, description="Requested quality label (informational)")

    @validator('format', pre=True)
    def normalize_format(cls, v):
        if v is None or v == "":
            return OutputFormat.MP4
        if isinstance(v, str):
            return v.strip().lower()
        return v
