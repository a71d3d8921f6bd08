"""Job description loading and validation for sqlmove."""

import asyncio
import os
import re
from pathlib import Path
from typing import Any

import structlog
import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ..utils import normalize_drive_letter
from .exceptions import PartitionMissingOrConfigInvalid

logger = structlog.get_logger()

GIB = 1024 * 1024 * 1024


class _JobModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class VolumePair(_JobModel):
    """One old-disk to new-disk relocation."""

    source_volume: str = Field(alias="sourceVolume")
    destination_volume: str = Field(alias="destinationVolume")
    temporary_volume: str | None = Field(default=None, alias="temporaryVolume")

    @field_validator("source_volume", "destination_volume", "temporary_volume", mode="before")
    @classmethod
    def _normalize_letter(cls, value: Any) -> Any:
        if value is None:
            return None
        return normalize_drive_letter(str(value))

    @model_validator(mode="after")
    def _distinct_volumes(self) -> "VolumePair":
        if self.source_volume == self.destination_volume:
            raise ValueError(
                f"source and destination volume are both {self.source_volume}:"
            )
        if self.temporary_volume in (self.source_volume, self.destination_volume):
            raise ValueError(
                f"temporary volume {self.temporary_volume}: must differ from source and destination"
            )
        return self


class TempDBTarget(_JobModel):
    """Where tempdb files should live after the next engine start."""

    destination_volume: str = Field(alias="destinationVolume")
    safety_margin_bytes: int = Field(default=GIB, ge=0, alias="safetyMarginBytes")
    directory: str = "TempDB"

    @field_validator("destination_volume", mode="before")
    @classmethod
    def _normalize_letter(cls, value: Any) -> Any:
        return normalize_drive_letter(str(value))


class DatabaseTarget(_JobModel):
    """Destination directories for user database files."""

    data_directory: str = Field(alias="dataDirectory")
    log_directory: str = Field(alias="logDirectory")
    include: list[str] | None = None
    update_default_paths: bool = Field(default=False, alias="updateDefaultPaths")

    @field_validator("include")
    @classmethod
    def _include_unique(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return value
        names = [name.strip() for name in value if name and name.strip()]
        seen: set[str] = set()
        for name in names:
            # Database names compare case-insensitively under the default collation
            if name.lower() in seen:
                raise ValueError(f"database {name!r} listed more than once")
            seen.add(name.lower())
        return names


class MigrationJob(_JobModel):
    """Declarative, immutable migration plan."""

    disks: list[VolumePair] = Field(default_factory=list)
    tempdb: TempDBTarget | None = None
    databases: DatabaseTarget | None = None
    services: list[str]
    default_temporary_volume: str = Field(default="Z", alias="defaultTemporaryVolume")

    @field_validator("default_temporary_volume", mode="before")
    @classmethod
    def _normalize_letter(cls, value: Any) -> Any:
        return normalize_drive_letter(str(value))

    @field_validator("services")
    @classmethod
    def _services_unique(cls, value: list[str]) -> list[str]:
        names = [name.strip() for name in value if name and name.strip()]
        if not names:
            raise ValueError("at least one service name is required")
        seen: set[str] = set()
        for name in names:
            if name.lower() in seen:
                raise ValueError(f"service {name!r} listed more than once")
            seen.add(name.lower())
        return names

    @model_validator(mode="after")
    def _validate_letters(self) -> "MigrationJob":
        if not self.disks and self.tempdb is None and self.databases is None:
            raise ValueError("job has no disks, tempdb or databases to relocate")

        pair_letters: dict[str, int] = {}
        for index, pair in enumerate(self.disks):
            for letter in (pair.source_volume, pair.destination_volume):
                if letter in pair_letters:
                    raise ValueError(
                        f"volume {letter}: appears in disk pairs {pair_letters[letter]} and {index}"
                    )
                pair_letters[letter] = index

        temp_letters: set[str] = set()
        for pair in self.disks:
            temp = self.temporary_volume_for(pair)
            if temp in pair_letters:
                raise ValueError(f"temporary volume {temp}: is also a source or destination volume")
            if temp in temp_letters:
                raise ValueError(f"temporary volume {temp}: is shared by more than one disk pair")
            temp_letters.add(temp)
        return self

    def temporary_volume_for(self, pair: VolumePair) -> str:
        """Temporary letter for a pair, falling back to the run-wide default."""
        return pair.temporary_volume or self.default_temporary_volume


def parse_job(data: dict[str, Any], default_temporary_volume: str | None = None) -> MigrationJob:
    """Validate a job description mapping.

    Args:
        data: Parsed job description
        default_temporary_volume: Run-wide default temporary letter from settings

    Returns:
        Validated, immutable job

    Raises:
        PartitionMissingOrConfigInvalid: If the description is malformed
    """
    if not isinstance(data, dict):
        raise PartitionMissingOrConfigInvalid("Job description must be a mapping")

    payload = dict(data)
    if default_temporary_volume and not (
        "default_temporary_volume" in payload or "defaultTemporaryVolume" in payload
    ):
        payload["default_temporary_volume"] = default_temporary_volume

    try:
        return MigrationJob.model_validate(payload)
    except (ValidationError, ValueError) as e:
        raise PartitionMissingOrConfigInvalid(f"Invalid job description: {e}") from e


def load_job(job_path: str | Path, default_temporary_volume: str | None = None) -> MigrationJob:
    """Load a job description (synchronous interface).

    Note:
        For async code, use load_job_async() instead.
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(load_job_async(job_path, default_temporary_volume))
    raise RuntimeError(
        "load_job() cannot be called from within an async context. "
        "Use 'await load_job_async()' instead."
    )


async def load_job_async(
    job_path: str | Path, default_temporary_volume: str | None = None
) -> MigrationJob:
    """Load and validate a YAML job description.

    Args:
        job_path: Path to the YAML job file
        default_temporary_volume: Run-wide default temporary letter from settings

    Returns:
        Validated job

    Raises:
        PartitionMissingOrConfigInvalid: If the file is missing, unreadable or malformed
    """
    load_dotenv()

    path = Path(job_path)
    if not path.exists():
        raise PartitionMissingOrConfigInvalid(f"Job description not found: {path}")

    data = await _load_yaml_job(path)
    job = parse_job(data, default_temporary_volume)
    logger.info(
        "Job description loaded",
        path=str(path),
        disks=len(job.disks),
        tempdb=job.tempdb is not None,
        databases=job.databases is not None,
        services=job.services,
    )
    return job


async def _load_yaml_job(job_path: Path) -> dict[str, Any]:
    """Load YAML job file."""
    try:
        content = await asyncio.to_thread(job_path.read_text, encoding="utf-8")
        content = _expand_env_vars(content)
        loaded = yaml.safe_load(content)
    except (OSError, yaml.YAMLError) as e:
        raise PartitionMissingOrConfigInvalid(f"Failed to load job from {job_path}: {e}") from e

    if not isinstance(loaded, dict):
        raise PartitionMissingOrConfigInvalid(f"Job description {job_path} is not a mapping")
    return loaded


def _expand_env_vars(content: str) -> str:
    """Securely expand environment variables with allowlist."""

    allowed_env_vars = {
        "COMPUTERNAME",
        "SQLMOVE_INSTANCE",
        "SQLMOVE_DEFAULT_TEMP_LETTER",
        "SQLMOVE_DATA_DIR",
        "SQLMOVE_LOG_DIR_TARGET",
        "SQLMOVE_SERVICE",
    }

    def replace_if_allowed(match):
        var_name = match.group(1) or match.group(2)
        original_pattern = match.group(0)

        if var_name in allowed_env_vars:
            return os.getenv(var_name, original_pattern)
        logger.warning(
            "Environment variable not in allowlist, skipping expansion",
            variable=var_name,
            pattern=original_pattern,
        )
        return original_pattern

    return re.sub(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)", replace_if_allowed, content)
