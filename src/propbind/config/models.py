from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

UnreachablePolicy = Literal["fail", "skip"]
LoadType = Literal["merge", "first"]


class BindingOptions(BaseModel):
    """
    Per-binding behavior of the source loader and value coercion.

    - on_unreachable: "fail" aborts the load on the first source that cannot be
      read; "skip" logs it and continues with the remaining sources.
    - load_type: "merge" lets every source contribute keys missing from earlier
      ones; "first" uses only the first source that can be read.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    on_unreachable: UnreachablePolicy = "fail"
    load_type: LoadType = "merge"
    list_separator: str = Field(default=",", min_length=1)
    expand_variables: bool = True
    http_timeout_seconds: float = Field(default=10, gt=0)
    http_max_retries: int = Field(default=3, ge=1)


class FileRotationSettings(BaseModel):
    """
    Date-based rotation settings (daily).

    This maps cleanly to Python's standard library TimedRotatingFileHandler behavior.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    backup_count: int = 5


class FileLoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    path: Optional[str] = None
    rotation: FileRotationSettings = Field(default_factory=FileRotationSettings)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    level: str = "INFO"
    file: FileLoggingSettings = Field(default_factory=FileLoggingSettings)


class PropbindSettings(BaseModel):
    """Effective settings after applying defaults, the YAML file and environment overrides."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    binding: BindingOptions = Field(default_factory=BindingOptions)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@dataclass(frozen=True, slots=True)
class SettingsLoadRequest:
    """
    Optional inputs for the settings loader.

    A missing YAML path means defaults plus environment overrides only.
    """

    yaml_path: Optional[str] = None
    env_prefix: str = "PROPBIND__"
    dotenv_path: Optional[str] = ".env"
