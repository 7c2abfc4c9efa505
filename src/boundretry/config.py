"""Retry policy model and TOML/environment loading."""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from contextlib import suppress
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from typing_extensions import TypedDict

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

from boundretry.errors import InvalidConfiguration

DEFAULT_CONFIG_PATH = Path("~/.config/boundretry/config.toml").expanduser()
DEFAULT_MAX_OPERATION_WAIT_TIME = 30.0
DEFAULT_RETRY_INTERVAL_TIME = 0.0
DEFAULT_MAX_RETRY_TIMES = 3
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_ON_FAULT: Literal["retry", "raise"] = "retry"
ENV_PREFIX = "BOUNDRETRY_"

FaultPolicy = Literal["retry", "raise"]


class RetryTable(TypedDict, total=False):
    max_operation_wait_time: float
    retry_interval_time: float
    max_retry_times: int
    poll_interval: float
    on_fault: str


class RetryPolicy(BaseModel):
    """Immutable retry parameters; durations are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_operation_wait_time: float = Field(default=DEFAULT_MAX_OPERATION_WAIT_TIME, ge=0)
    retry_interval_time: float = Field(default=DEFAULT_RETRY_INTERVAL_TIME, ge=0)
    max_retry_times: int = Field(default=DEFAULT_MAX_RETRY_TIMES, ge=0)
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0)
    on_fault: FaultPolicy = DEFAULT_ON_FAULT

    @field_validator(
        "max_operation_wait_time",
        "retry_interval_time",
        "max_retry_times",
        "poll_interval",
        mode="before",
    )
    @classmethod
    def _reject_bool(cls, value: object) -> object:
        if isinstance(value, bool):
            raise ValueError("must be a number, not a boolean")
        return value

    @property
    def max_attempts(self) -> int:
        return self.max_retry_times + 1

    @property
    def worst_case_seconds(self) -> float:
        return (self.max_operation_wait_time + self.retry_interval_time) * self.max_attempts


def build_policy(**values: object) -> RetryPolicy:
    """Validate values into a policy, mapping validation failures to InvalidConfiguration."""
    try:
        return RetryPolicy.model_validate(values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'policy'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidConfiguration(
            "Invalid retry policy",
            hint=problems,
        ) from exc


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _read_table(resolved: Path) -> RetryTable:
    if not resolved.exists():
        return RetryTable()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError) as exc:
        raise InvalidConfiguration(
            f"Cannot read retry config: {resolved}",
            hint=str(exc),
        ) from exc
    table = raw.get("retry", {})
    if not isinstance(table, dict):
        raise InvalidConfiguration(
            f"Invalid retry config: {resolved}",
            hint="[retry] must be a table.",
        )
    return RetryTable(**table)


def _env_overrides(environ: Mapping[str, str]) -> dict[str, str]:
    overrides: dict[str, str] = {}
    for name in RetryPolicy.model_fields:
        value = environ.get(f"{ENV_PREFIX}{name.upper()}", "").strip()
        if value:
            overrides[name] = value
    return overrides


def load_policy(
    path: str | Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> RetryPolicy:
    resolved = get_config_path(path)
    values: dict[str, object] = dict(_read_table(resolved))
    values.update(_env_overrides(os.environ if environ is None else environ))
    return build_policy(**values)


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def save_policy(policy: RetryPolicy, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    lines = ["[retry]"]
    for name, value in policy.model_dump().items():
        lines.append(f"{name} = {_toml_scalar(value)}")
    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
