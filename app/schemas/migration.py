from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class MigrationCheckRequest(BaseModel):
    user_id: Optional[str] = None
    email: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MigrationCheckResponse(BaseModel):
    migration_performed: bool
    success: bool
    errors: list[str] = Field(default_factory=list)
    migrated_tables: list[str] = Field(default_factory=list)
    user_had_previous_data: bool

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
