# SPDX-License-Identifier: MIT
"""Playbook registry: register, discover, search and compile playbooks.

Registries are plain instances; callers that want a shared registry pass one
around. Registering malformed content never raises: the entry is kept with
``validated=False`` and its error messages, so tooling can list what failed.
"""

from __future__ import annotations

import hashlib
import logging
import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from importlib import resources
from pathlib import Path
from typing import Literal

from superaudit.playbooks.compiler import CompileError, PlaybookRule, compile_playbook
from superaudit.playbooks.parser import parse_playbook
from superaudit.playbooks.schema import PlaybookError, PlaybookMeta, PlaybookSpec

log = logging.getLogger(__name__)

SourceType = Literal["file", "string", "builtin"]

PLAYBOOK_SUFFIXES = frozenset({".yaml", ".yml"})


def sample_playbooks() -> dict[str, str]:
    """Bundled sample playbooks, name -> YAML text, sorted by name."""
    samples = resources.files("superaudit.playbooks").joinpath("samples")
    found = {
        entry.name.rsplit(".", 1)[0]: entry.read_text(encoding="utf-8")
        for entry in samples.iterdir()
        if entry.is_file() and entry.name.endswith((".yaml", ".yml"))
    }
    return dict(sorted(found.items()))


def playbook_id_from_path(path: str | Path) -> str:
    return re.sub(r"[^a-z0-9-]", "-", Path(path).stem.lower())


@dataclass(frozen=True)
class PlaybookSource:
    type: SourceType
    location: str
    content_hash: str


@dataclass
class RegisteredPlaybook:
    """A registry entry. ``spec`` is None when the document could not be parsed at all."""

    id: str
    source: PlaybookSource
    meta: PlaybookMeta
    spec: PlaybookSpec | None
    registered_at: datetime
    order: int
    validation_errors: list[str] = field(default_factory=list)
    usage_count: int = 0
    last_used: datetime | None = None

    @property
    def validated(self) -> bool:
        return self.spec is not None and not self.validation_errors


@dataclass(frozen=True)
class PlaybookStats:
    total: int
    by_source: dict[str, int]
    by_author: dict[str, int]
    by_tag: dict[str, int]
    most_used: list[str]
    recently_added: list[str]


class PlaybookRegistry:
    """In-memory catalogue of playbooks keyed by id."""

    def __init__(self) -> None:
        self._entries: dict[str, RegisteredPlaybook] = {}
        self._counter = 0

    # --- registration ---

    def _store(self, playbook_id: str, text: str, source_type: SourceType, location: str) -> RegisteredPlaybook:
        source = PlaybookSource(
            type=source_type,
            location=location,
            content_hash=hashlib.sha256(text.encode("utf-8")).hexdigest(),
        )
        spec: PlaybookSpec | None = None
        errors: list[str] = []
        try:
            spec, problems = parse_playbook(text)
            errors = [str(p) for p in problems]
            meta = spec.meta
        except PlaybookError as exc:
            errors = [str(exc)]
            meta = PlaybookMeta(name=playbook_id or location or "unnamed")
        if errors:
            log.warning("Playbook %s from %s registered with %d error(s)", playbook_id, location, len(errors))
        self._counter += 1
        entry = RegisteredPlaybook(
            id=playbook_id,
            source=source,
            meta=meta,
            spec=spec,
            registered_at=datetime.now(UTC),
            order=self._counter,
            validation_errors=errors,
        )
        self._entries.pop(playbook_id, None)
        self._entries[playbook_id] = entry
        return entry

    def register_string(self, text: str, playbook_id: str, location: str = "inline") -> RegisteredPlaybook:
        return self._store(playbook_id, text, "string", location)

    def register_builtin(self, playbook_id: str, text: str) -> RegisteredPlaybook:
        return self._store(playbook_id, text, "builtin", f"builtin:{playbook_id}")

    def register_file(self, path: str | Path, playbook_id: str | None = None) -> RegisteredPlaybook:
        """Register a playbook file. Unreadable files are registered as invalid entries."""
        path = Path(path)
        pid = playbook_id or playbook_id_from_path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            log.warning("Cannot read playbook %s: %s", path, type(exc).__name__)
            self._counter += 1
            entry = RegisteredPlaybook(
                id=pid,
                source=PlaybookSource(type="file", location=str(path), content_hash=""),
                meta=PlaybookMeta(name=path.name),
                spec=None,
                registered_at=datetime.now(UTC),
                order=self._counter,
                validation_errors=[f"Cannot read playbook: {type(exc).__name__}"],
            )
            self._entries.pop(pid, None)
            self._entries[pid] = entry
            return entry
        return self._store(pid, text, "file", str(path))

    def register_directory(self, path: str | Path, *, recursive: bool = False) -> list[RegisteredPlaybook]:
        """Register every ``.yaml`` / ``.yml`` file in a directory, in sorted order.

        Raises:
            NotADirectoryError: If ``path`` is not an existing directory.
        """
        root = Path(path)
        if not root.is_dir():
            raise NotADirectoryError(f"Directory not found: {root}")
        registered: list[RegisteredPlaybook] = []
        for entry in sorted(root.iterdir()):
            if entry.is_dir():
                if recursive:
                    registered.extend(self.register_directory(entry, recursive=True))
            elif entry.suffix.lower() in PLAYBOOK_SUFFIXES:
                registered.append(self.register_file(entry))
        return registered

    def register_samples(self) -> list[RegisteredPlaybook]:
        return [self.register_builtin(name, text) for name, text in sample_playbooks().items()]

    # --- lookup ---

    def get(self, playbook_id: str) -> RegisteredPlaybook | None:
        return self._entries.get(playbook_id)

    def get_and_use(self, playbook_id: str) -> RegisteredPlaybook | None:
        """Like get(), but records the access in the usage statistics."""
        entry = self._entries.get(playbook_id)
        if entry is not None:
            entry.usage_count += 1
            entry.last_used = datetime.now(UTC)
        return entry

    def has(self, playbook_id: str) -> bool:
        return playbook_id in self._entries

    def unregister(self, playbook_id: str) -> bool:
        return self._entries.pop(playbook_id, None) is not None

    def all(self) -> list[RegisteredPlaybook]:
        return list(self._entries.values())

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    # --- search ---

    def search(
        self,
        *,
        tags: Iterable[str] | None = None,
        author: str | None = None,
        name: str | None = None,
        ai_enabled: bool | None = None,
        severity: Iterable[str] | None = None,
    ) -> list[RegisteredPlaybook]:
        """Entries matching every given criterion.

        ``tags`` matches if any tag overlaps; ``author`` and ``name`` are
        case-insensitive substrings; ``severity`` keeps playbooks with at least
        one check of a listed severity.
        """
        results = self.all()
        if tags:
            wanted = set(tags)
            results = [e for e in results if wanted & set(e.meta.tags)]
        if author:
            results = [e for e in results if author.lower() in e.meta.author.lower()]
        if name:
            results = [e for e in results if name.lower() in e.meta.name.lower()]
        if ai_enabled is not None:
            results = [e for e in results if e.meta.ai.enabled == ai_enabled]
        if severity:
            levels = {s.lower() for s in severity}
            results = [
                e for e in results if e.spec is not None and any(c.severity in levels for c in e.spec.checks)
            ]
        return results

    def by_tag(self, tag: str) -> list[RegisteredPlaybook]:
        return [e for e in self._entries.values() if tag in e.meta.tags]

    def by_author(self, author: str) -> list[RegisteredPlaybook]:
        return [e for e in self._entries.values() if e.meta.author == author]

    def tags(self) -> list[str]:
        return sorted({t for e in self._entries.values() for t in e.meta.tags})

    def authors(self) -> list[str]:
        return sorted({e.meta.author for e in self._entries.values()})

    def stats(self) -> PlaybookStats:
        entries = self.all()
        most_used = sorted(entries, key=lambda e: -e.usage_count)[:10]
        recent = sorted(entries, key=lambda e: -e.order)[:10]
        return PlaybookStats(
            total=len(entries),
            by_source=dict(Counter(e.source.type for e in entries)),
            by_author=dict(Counter(e.meta.author for e in entries)),
            by_tag=dict(Counter(t for e in entries for t in e.meta.tags)),
            most_used=[e.id for e in most_used],
            recently_added=[e.id for e in recent],
        )

    # --- validation and compilation ---

    def validate(self, playbook_id: str) -> tuple[bool, list[str]]:
        entry = self._entries.get(playbook_id)
        if entry is None:
            return False, ["Playbook not found"]
        return entry.validated, list(entry.validation_errors)

    def compile(self, playbook_id: str) -> tuple[list[PlaybookRule], list[CompileError]]:
        """Compile the valid checks of a registered playbook.

        Raises:
            KeyError: Unknown id.
            PlaybookError: The entry has no parsed playbook to compile.
        """
        entry = self._entries[playbook_id]
        if entry.spec is None:
            raise PlaybookError(f"Playbook {playbook_id} could not be parsed: {'; '.join(entry.validation_errors)}")
        return compile_playbook(entry.spec)
