from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ApplicationSubmit(BaseModel):
    url: str


class ApplicationUpdate(BaseModel):
    name: str
    url: Optional[str] = None
    twitter_id: Optional[str] = None
    explain: Optional[str] = None
    image_url: Optional[str] = None
    status: Optional[str] = None


class NoteWrite(BaseModel):
    url: str
    publish_date: Optional[datetime] = None
    likes_count: int = 0
    collects_count: int = 0
    comments_count: int = 0


class NoteResponse(BaseModel):
    id: str
    app_id: str
    url: str
    publish_date: Optional[datetime]
    likes_count: int
    collects_count: int
    comments_count: int
    created_at: datetime

    model_config = {"from_attributes": True}


class NoteNotifyRequest(BaseModel):
    action: str = "report"
