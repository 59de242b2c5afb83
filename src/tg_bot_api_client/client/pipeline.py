"""Result values and the stage combinator used by the request pipeline."""

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class Ok:
    value: Any


@dataclass(frozen=True)
class Err:
    error: BaseException


Result = Ok | Err
Stage = Callable[[Any], Result]


def run_pipeline(value, *stages: Stage) -> Result:
    """Feed ``value`` through ``stages``, stopping at the first ``Err``.

    Stages may still raise: such exceptions are fatal and are not converted.
    """
    result: Result = Ok(value)
    for stage in stages:
        result = stage(result.value)
        if isinstance(result, Err):
            return result
        if not isinstance(result, Ok):
            raise TypeError(f"Pipeline stage {stage!r} returned {result!r}, not Ok/Err")
    return result


def attempt(fn: Callable, *args, errors: tuple[type[BaseException], ...] = (Exception,)) -> Result:
    """Call ``fn`` and capture the listed exception types as an ``Err``."""
    try:
        return Ok(fn(*args))
    except errors as e:
        return Err(e)
