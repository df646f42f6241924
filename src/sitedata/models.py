"""Base Pydantic models for engine values.

This module defines the foundational model classes used by requests,
responses, data source nodes and build errors. It enforces immutability
and strict schema validation so that values used as cache keys can
never change after they were hashed.
"""

from pydantic import BaseModel, ConfigDict
from pydantic_settings import BaseSettings, SettingsConfigDict


class SchemaModel(BaseModel):
    """Base immutable model for all engine values.

    Design principles enforced by this model:
        - Immutability: values can not be modified after creation.
          Requests are hashed once and data source trees are shared
          between resolution rounds, so mutation would break caching.
        - Strict schema validation: unknown or extra fields are rejected
          to avoid silent errors caused by typos.

    Arbitrary types are allowed because data source nodes carry user
    callables and decoders.
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        frozen=True,
        extra='forbid',
    )


class SettingsModel(BaseSettings):
    """Base immutable model for runtime settings.

    Design principles enforced by this model:
        - Immutability: resolved settings can not be modified after creation.
        - Tolerant schema handling: unknown or extra fields are ignored,
          so the environment may contain unrelated variables.
    """

    model_config =  SettingsConfigDict(
        frozen=True,
        extra='ignore',
    )
