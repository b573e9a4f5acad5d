from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FeedbackRequest(BaseModel):
    feedback_text: Optional[str] = None
    application_id: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BugReportRequest(BaseModel):
    error: Optional[str] = None
    project_name: Optional[str] = None
    website_url: Optional[str] = None
    twitter_username: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
