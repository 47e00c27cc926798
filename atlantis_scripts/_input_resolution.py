"""Resolve CLI inputs from flags, environment variables and defaults."""

from __future__ import annotations

import os
from collections import abc as cabc
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, get_args

Environment = Literal["daily", "staging", "production"]
ENVIRONMENTS: tuple[str, ...] = get_args(Environment)


@dataclass(frozen=True, slots=True)
class InputResolution:
    """Where to look for an input when the flag was not given."""

    env_key: str
    default: str | int | Path | None = None
    as_path: bool = False


def resolve_input(
    param_value: str | int | Path | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
) -> str | int | Path | None:
    """Resolve input from parameter, environment variable, or default."""
    if param_value is not None:
        return param_value

    env_value = (os.environ if env is None else env).get(resolution.env_key)
    if env_value:
        return Path(env_value) if resolution.as_path else env_value

    return resolution.default


def resolve_int_input(
    param_value: int | None,
    resolution: InputResolution,
    env: cabc.Mapping[str, str] | None = None,
    *,
    minimum: int = 0,
) -> int:
    """Resolve an integer input, exiting with a usage message when invalid.

    Examples
    --------
    >>> resolve_int_input(None, InputResolution("ROLLOUT_BATCH_SIZE", default=5), env={})
    5
    """
    raw = resolve_input(param_value, resolution, env=env)
    try:
        value = int(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        msg = f"{resolution.env_key} must be an integer, got: {raw!r}"
        raise SystemExit(msg) from exc
    if value < minimum:
        msg = f"{resolution.env_key} must be at least {minimum}, got: {value}"
        raise SystemExit(msg)
    return value


def validate_environment(environment: str) -> str:
    """Return *environment* when it names a known environment.

    Examples
    --------
    >>> validate_environment("staging")
    'staging'
    """
    if environment not in ENVIRONMENTS:
        msg = (
            f"Invalid environment {environment!r}; "
            f"expected one of: {', '.join(ENVIRONMENTS)}"
        )
        raise SystemExit(msg)
    return environment


def parse_target(target: str | None) -> tuple[str, str] | None:
    """Split a ``namespace/deployment`` target.

    Examples
    --------
    >>> parse_target("billing/api")
    ('billing', 'api')
    >>> parse_target(None) is None
    True
    """
    if target is None:
        return None
    namespace, _, deployment = target.partition("/")
    if not namespace or not deployment:
        msg = "Invalid deployment format. Use: namespace/deployment"
        raise SystemExit(msg)
    return namespace, deployment
