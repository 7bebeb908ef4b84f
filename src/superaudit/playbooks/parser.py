# SPDX-License-Identifier: MIT
"""Playbook parser: YAML text -> PlaybookSpec plus per-check validation errors.

Validation is exhaustive. A document with several malformed checks still
yields every valid check; the malformed ones come back as
PlaybookValidationError records. Only problems with the document as a whole
raise PlaybookError.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from superaudit.playbooks.schema import (
    PLAYBOOK_VERSION,
    PlaybookError,
    PlaybookMeta,
    PlaybookSpec,
    PlaybookValidationError,
    StaticCheckSpec,
)

log = logging.getLogger(__name__)


def safe_error_summary(e: ValidationError) -> list[str]:
    """Extract only field paths and error type codes from a ValidationError.

    Never echoes raw values: playbooks come from third parties and their
    content must not leak into logs or reports verbatim.
    """
    parts: list[str] = []
    for err in e.errors():
        loc = ".".join(str(part) for part in err["loc"]) or "<entry>"
        parts.append(f"{loc}: {err['type']}")
    return parts


def _load_document(text: str) -> dict[Any, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        raise PlaybookError(f"Invalid YAML{where}") from None
    except ValueError:
        # Timestamp-shaped scalars such as `2001-13-01` fail in the constructor.
        raise PlaybookError("Invalid YAML scalar") from None
    except RecursionError:
        raise PlaybookError("Playbook nesting too deep") from None
    if data is None:
        raise PlaybookError("Playbook is empty")
    if not isinstance(data, dict):
        raise PlaybookError(f"Playbook root must be a mapping, got {type(data).__name__}")
    return data


def _check_id(entry: Any) -> str | None:
    if isinstance(entry, dict):
        value = entry.get("id")
        if isinstance(value, str):
            return value
    return None


def parse_playbook(text: str) -> tuple[PlaybookSpec, list[PlaybookValidationError]]:
    """Parse a playbook document.

    Returns:
        The playbook with every check that validated, in document order, and the
        validation errors for the rest.

    Raises:
        PlaybookError: Invalid YAML, a non-mapping root, an unsupported version,
            missing or invalid ``meta``, or a ``checks`` section that is not a list.
    """
    data = _load_document(text)

    version = data.get("version", PLAYBOOK_VERSION)
    if isinstance(version, (int, float)) and not isinstance(version, bool):
        version = str(version)
    if version != PLAYBOOK_VERSION:
        raise PlaybookError(f"Unsupported playbook version; expected {PLAYBOOK_VERSION!r}")

    if "meta" not in data:
        raise PlaybookError("Playbook is missing the 'meta' section")
    try:
        meta = PlaybookMeta.model_validate(data["meta"])
    except ValidationError as e:
        raise PlaybookError(f"Invalid playbook meta: {'; '.join(safe_error_summary(e))}") from None

    entries = data["checks"] if "checks" in data else data.get("rules")
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise PlaybookError("'checks' must be a list")

    checks: list[StaticCheckSpec] = []
    errors: list[PlaybookValidationError] = []
    seen: set[str] = set()
    for index, entry in enumerate(entries):
        try:
            check = StaticCheckSpec.model_validate(entry)
        except ValidationError as e:
            errors.append(PlaybookValidationError(index, _check_id(entry), safe_error_summary(e)))
            continue
        if check.id in seen:
            errors.append(PlaybookValidationError(index, check.id, ["id: duplicate"]))
            continue
        seen.add(check.id)
        checks.append(check)

    if errors:
        log.debug("Playbook %r: %d valid checks, %d rejected", meta.name, len(checks), len(errors))
    return PlaybookSpec(version=PLAYBOOK_VERSION, meta=meta, checks=tuple(checks)), errors


def parse_playbook_file(path: str | Path) -> tuple[PlaybookSpec, list[PlaybookValidationError]]:
    """Read and parse a playbook file (UTF-8).

    Raises:
        PlaybookError: The file cannot be read or decoded, or parse_playbook fails.
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise PlaybookError(f"Cannot read playbook {path}: {type(exc).__name__}") from exc
    return parse_playbook(text)
