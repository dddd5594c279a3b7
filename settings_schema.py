from typing import Literal, Optional
from pydantic import BaseModel, ValidationError


class SettingsSchema(BaseModel):
    language: Literal["en", "it"] = "en"
    weight_unit: Literal["kg", "lb"] = "kg"
    default_time_range: Literal["all", "month", "week", "today"] = "all"
    ai_enabled: bool = True
    ai_model: str = "gemini-3-flash-preview"
    gemini_api_key: Optional[str | bool] = None


def validate_settings(data: dict) -> None:
    try:
        SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
