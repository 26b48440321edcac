from enum import Enum

from pydantic import BaseModel, Field, field_validator

from tryon.core.config import settings
from tryon.services.key_pool.models import KeyStatus


class AspectRatio(str, Enum):
    AUTO = "auto"
    SQUARE = "1:1"
    LANDSCAPE_16_9 = "16:9"
    PORTRAIT_9_16 = "9:16"
    LANDSCAPE_4_3 = "4:3"
    PORTRAIT_3_4 = "3:4"
    LANDSCAPE_3_2 = "3:2"
    PORTRAIT_2_3 = "2:3"
    LANDSCAPE_5_4 = "5:4"
    PORTRAIT_4_5 = "4:5"
    ULTRAWIDE_21_9 = "21:9"


class CredentialIn(BaseModel):
    key: str
    status: KeyStatus = KeyStatus.UNKNOWN

    @field_validator("key")
    @classmethod
    def strip_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("key must not be empty")
        return v


class GenerationConfig(BaseModel):
    """Provider choice, credentials and generation parameters for one call."""
    provider_kind: str = Field(default_factory=lambda: settings.default_provider)
    api_keys: list[CredentialIn] = Field(default_factory=list)
    grsai_api_key: str | None = None
    prompt: str = Field(default_factory=lambda: settings.default_prompt)
    temperature: float = Field(default_factory=lambda: settings.default_temperature, ge=0.0, le=2.0)
    aspect_ratio: AspectRatio | None = None
    model: str | None = None

    @field_validator("provider_kind")
    @classmethod
    def normalize_provider(cls, v: str) -> str:
        return (v or "").strip().lower()
