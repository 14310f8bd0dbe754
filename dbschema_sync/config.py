from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator

from dbschema_sync.dialect import get_profile
from dbschema_sync.errors import ArgumentError
from dbschema_sync.models import Engine

ENV_PREFIX = "DBSCHEMA_SYNC_"


class ConnectionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    engine: Engine
    host: str
    port: int = Field(ge=1, le=65535)
    username: str = ""
    password: SecretStr = SecretStr("")
    database: str

    @field_validator("host", "database")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be empty")
        return value

    @classmethod
    def build(cls, **values: Any) -> ConnectionConfig:
        """Validate connection parameters, raising ArgumentError instead of ValidationError."""
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ArgumentError(f"invalid connection parameters: {exc}") from exc

    @classmethod
    def from_env(
        cls,
        engine: Engine | str,
        prefix: str = ENV_PREFIX,
        environ: Mapping[str, str] | None = None,
    ) -> ConnectionConfig:
        env = os.environ if environ is None else environ
        try:
            engine = Engine(str(engine).upper())
        except ValueError as exc:
            raise ArgumentError(f"unknown engine {engine!r}") from exc
        return cls.build(
            engine=engine,
            host=env.get(f"{prefix}HOST", "localhost"),
            port=env.get(f"{prefix}PORT") or get_profile(engine).default_port,
            username=env.get(f"{prefix}USERNAME", ""),
            password=env.get(f"{prefix}PASSWORD", ""),
            database=env.get(f"{prefix}DATABASE", ""),
        )
