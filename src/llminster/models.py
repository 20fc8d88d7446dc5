# llminster: Centralized Pydantic v2 models for turns, generation options and the application config. Config keys accept both snake_case and the PascalCase spelling of older config.json files.

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator


class CustomBaseModel(BaseModel):
    """Pydantic base model configured to forbid unknown fields for strict validation."""
    model_config = ConfigDict(extra="forbid")


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Turn(CustomBaseModel):
    """One recorded message (user or model) in a session's event log."""

    id: str = Field(default_factory=_new_id, description="Unique turn identifier")
    session_id: str = Field(..., description="Session the turn belongs to")
    sequence_number: int = Field(..., ge=1, description="Per-session, strictly increasing position")
    timestamp: datetime = Field(default_factory=_utcnow, description="UTC instant the turn was recorded")
    speaker: str = Field(..., description="'User' or the answering model's name")
    content: str = Field(..., description="Message text")


class GenerationOptions(CustomBaseModel):
    temperature: float = Field(0.025, ge=0.0, le=2.0, description="Sampling temperature")
    max_tokens: int = Field(4096, gt=0, description="Maximum number of tokens to generate")


class ProviderConfig(BaseModel):
    """API key plus the model_name -> alias mapping for one provider."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api_key: str = Field(..., validation_alias=AliasChoices("api_key", "ApiKey"))
    models: Dict[str, str] = Field(default_factory=dict, validation_alias=AliasChoices("models", "Models"))

    @field_validator("api_key")
    @classmethod
    def _api_key_present(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("api_key must be set")
        return v.strip()

    @field_validator("models")
    @classmethod
    def _aliases_present(cls, v: Dict[str, str]) -> Dict[str, str]:
        for model_name, alias in v.items():
            if not str(alias).strip():
                raise ValueError(f"model {model_name!r} has an empty alias")
        return {name: str(alias).strip() for name, alias in v.items()}


class AppConfig(BaseModel):
    """Settings loaded once at startup from config.yaml / config.json."""
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    watch_directory: str = Field(..., validation_alias=AliasChoices("watch_directory", "WatchDirectory"))
    default_alias: str = Field(..., validation_alias=AliasChoices("default_alias", "DefaultAlias"))
    providers: Dict[str, ProviderConfig] = Field(..., validation_alias=AliasChoices("providers", "Providers"))
    generation: GenerationOptions = Field(default_factory=GenerationOptions)
    hashes_file: str = "processed_hashes.json"
    log_dir: str = "logs"
    debounce_ms: int = Field(500, ge=0)
    access_attempts: int = Field(10, ge=1)
    access_delay_ms: int = Field(100, ge=0)
    max_workers: int = Field(4, ge=1)

    @field_validator("watch_directory")
    @classmethod
    def _watch_directory_present(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("watch_directory must be specified")
        return v.strip()

    @model_validator(mode="after")
    def _default_alias_resolves(self) -> "AppConfig":
        wanted = self.default_alias.strip().lower()
        for provider in self.providers.values():
            if any(alias.lower() == wanted for alias in provider.models.values()):
                return self
        raise ValueError(f"default_alias {self.default_alias!r} is not mapped by any provider")
