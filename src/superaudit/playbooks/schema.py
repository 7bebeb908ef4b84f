# SPDX-License-Identifier: MIT
"""Pydantic models for the YAML playbook format (version 1.0)."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from superaudit.rules.base import Severity

PLAYBOOK_VERSION = "1.0"

CheckTarget = Literal[
    "contract",
    "function",
    "modifier",
    "call",
    "assignment",
    "state-variable",
    "statement",
]
CheckScope = Literal["file", "project"]
SeverityLabel = Literal["error", "warning", "info"]


class PlaybookError(Exception):
    """The document as a whole is unusable (bad YAML, wrong root type, invalid meta)."""


class PlaybookValidationError(Exception):
    """One check entry failed schema validation; the rest of the playbook is still usable."""

    def __init__(self, index: int, check_id: str | None, errors: list[str]) -> None:
        self.index = index
        self.check_id = check_id
        self.errors = errors
        label = f"check #{index}" + (f" ({check_id})" if check_id else "")
        super().__init__(f"Invalid {label}: {'; '.join(errors)}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PlaybookValidationError):
            return NotImplemented
        return (self.index, self.check_id, self.errors) == (other.index, other.check_id, other.errors)

    def __hash__(self) -> int:
        return hash((self.index, self.check_id, tuple(self.errors)))


def _text(value: Any) -> Any:
    # YAML reads `version: 1.0` as a float.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class AIConfig(BaseModel):
    """Optional hint that findings of this playbook want model enrichment."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    enabled: bool = False
    prompt: str | None = None


class PlaybookMeta(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str = Field(min_length=1)
    author: str = "unknown"
    version: str | None = None
    description: str | None = None
    tags: tuple[str, ...] = ()
    ai: AIConfig = AIConfig()

    @field_validator("version", "author", "name", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _text(value)


class PredicateCall(BaseModel):
    """One conjunct of a check's ``match`` list.

    ``args`` is kept raw: the compiler validates it against the named predicate's
    parameter model, so the schema does not need to know the vocabulary.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    args: Any = None
    negated: bool = False

    @classmethod
    def from_item(cls, item: Any, *, negated: bool = False) -> PredicateCall:
        """Normalize ``NAME``, ``{NAME: args}`` or ``{not: item}``.

        Raises:
            ValueError: For any other shape.
        """
        if isinstance(item, str) and item:
            return cls(name=item, negated=negated)
        if isinstance(item, dict) and len(item) == 1:
            ((key, value),) = item.items()
            if not isinstance(key, str) or not key:
                raise ValueError("predicate name must be a non-empty string")
            if key == "not":
                return cls.from_item(value, negated=not negated)
            return cls(name=key, args=value, negated=negated)
        raise ValueError("match item must be a predicate name or a single-key mapping")


class StaticCheckSpec(BaseModel):
    """One declarative check: where to look, what must hold, what to say."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
    severity: SeverityLabel
    target: tuple[CheckTarget, ...] = Field(min_length=1)
    scope: CheckScope = "file"
    description: str | None = None
    match: tuple[PredicateCall, ...] = Field(min_length=1)
    message: str = Field(min_length=1)

    @field_validator("severity", mode="before")
    @classmethod
    def lower_severity(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("target", mode="before")
    @classmethod
    def single_target(cls, value: Any) -> Any:
        return (value,) if isinstance(value, str) else value

    @field_validator("match", mode="before")
    @classmethod
    def normalize_match(cls, value: Any) -> Any:
        if isinstance(value, (str, dict)):
            value = [value]
        if not isinstance(value, list):
            return value
        return tuple(item if isinstance(item, PredicateCall) else PredicateCall.from_item(item) for item in value)

    @property
    def level(self) -> Severity:
        return Severity.parse(self.severity)


class PlaybookSpec(BaseModel):
    """A parsed playbook: metadata plus the checks that validated."""

    model_config = ConfigDict(frozen=True)

    version: Literal["1.0"] = PLAYBOOK_VERSION
    meta: PlaybookMeta
    checks: tuple[StaticCheckSpec, ...] = ()
