from typing import Literal, Optional

from pydantic import BaseModel, Field, ValidationError


class SettingsSchema(BaseModel):
    feed_per_source_limit: int = Field(3, ge=1)
    feed_total_limit: int = Field(6, ge=1)
    token_expire_minutes: int = Field(30 * 24 * 60, ge=1)
    log_format: Literal["text", "json"] = "text"
    log_level: str = "INFO"
    jwt_secret: Optional[str] = None


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
