"""Shared types for the feedload package."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

Row = dict[str, Any]
Scalar = str | int | float | None
FeedRow = dict[str, Scalar]
Params = tuple | list | dict


@dataclass(frozen=True)
class ExecutionResult:
    """Metadata returned by a single executed statement."""

    rowcount: int
    lastrowid: int | None = None


@dataclass(frozen=True)
class Statement:
    """An SQL text paired with its parameters.

    Mapping params are bound by marker name, sequences by position. The
    params are copied on construction so the caller's object may be reused.
    """

    sql: str
    params: Params | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.sql, str) or not self.sql.strip():
            raise ValueError("Statement SQL must be a non-empty string")
        if self.params is None:
            return
        if isinstance(self.params, Mapping):
            object.__setattr__(self, "params", dict(self.params))
        elif isinstance(self.params, Sequence) and not isinstance(self.params, (str, bytes)):
            object.__setattr__(self, "params", tuple(self.params))
        else:
            raise TypeError(
                f"Statement params must be a sequence or mapping, got {type(self.params).__name__}"
            )
