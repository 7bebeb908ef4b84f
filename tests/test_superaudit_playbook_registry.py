# SPDX-License-Identifier: MIT
"""Tests for superaudit.playbooks.registry."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from superaudit.playbooks.registry import (
    PlaybookRegistry,
    playbook_id_from_path,
    sample_playbooks,
)
from superaudit.playbooks.schema import PlaybookError

GOOD = """\
meta:
  name: Good Book
  author: Alice
  tags: [defi, tokens]
  ai: {enabled: true}
checks:
  - {id: loop-call, severity: warning, target: call, match: [inside-loop], message: m}
"""

OTHER = """\
meta:
  name: Other Book
  author: Bob
  tags: [governance]
checks:
  - {id: info-only, severity: info, target: function, match: [checks-caller], message: m}
"""

PARTIAL = """\
meta: {name: Partial, author: Alice}
checks:
  - {id: ok, severity: info, target: call, match: [inside-loop], message: m}
  - {id: broken, severity: info, message: m}
"""


@pytest.fixture
def registry() -> PlaybookRegistry:
    reg = PlaybookRegistry()
    reg.register_string(GOOD, "good")
    reg.register_string(OTHER, "other")
    return reg


class TestSamples:
    def test_three_samples_bundled(self) -> None:
        assert list(sample_playbooks()) == ["access-control", "defi-vault", "erc20-token"]

    def test_every_sample_validates_and_compiles(self) -> None:
        reg = PlaybookRegistry()
        entries = reg.register_samples()
        assert [e.id for e in entries] == ["access-control", "defi-vault", "erc20-token"]
        for entry in entries:
            assert entry.validated, entry.validation_errors
            assert entry.source.type == "builtin"
            rules, errors = reg.compile(entry.id)
            assert errors == []
            assert len(rules) == len(entry.spec.checks)


class TestRegistration:
    def test_register_string(self, registry: PlaybookRegistry) -> None:
        entry = registry.get("good")
        assert entry is not None
        assert entry.validated
        assert entry.meta.name == "Good Book"
        assert entry.source.type == "string"
        assert entry.source.location == "inline"
        assert len(entry.source.content_hash) == 64

    def test_partial_playbook_keeps_valid_checks(self, registry: PlaybookRegistry) -> None:
        entry = registry.register_string(PARTIAL, "partial")
        assert not entry.validated
        assert entry.spec is not None
        assert [c.id for c in entry.spec.checks] == ["ok"]
        assert len(entry.validation_errors) == 1

    def test_malformed_document_is_registered_invalid(
        self, registry: PlaybookRegistry, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING, logger="superaudit.playbooks.registry"):
            entry = registry.register_string("meta: [", "broken")
        assert entry.spec is None
        assert not entry.validated
        assert entry.meta.name == "broken"
        assert entry.validation_errors[0].startswith("Invalid YAML")
        assert "broken" in caplog.text

    def test_deeply_nested_document_is_registered_invalid(self, registry: PlaybookRegistry) -> None:
        text = "meta: {name: x}\nchecks: " + "[" * 2000 + "]" * 2000
        entry = registry.register_string(text, "deep")
        assert entry.spec is None
        assert entry.validation_errors == ["Playbook nesting too deep"]

    def test_empty_id_falls_back_to_location(self, registry: PlaybookRegistry) -> None:
        entry = registry.register_string("::: not yaml [", "")
        assert entry.spec is None
        assert entry.meta.name == "inline"

    def test_reregistering_replaces(self, registry: PlaybookRegistry) -> None:
        registry.register_string(OTHER, "good")
        assert len(registry) == 2
        assert registry.get("good").meta.name == "Other Book"

    def test_register_file(self, tmp_path: Path) -> None:
        path = tmp_path / "My Checks.yaml"
        path.write_text(GOOD, encoding="utf-8")
        entry = PlaybookRegistry().register_file(path)
        assert entry.id == "my-checks"
        assert entry.source.type == "file"
        assert entry.source.location == str(path)

    def test_unreadable_file(self, tmp_path: Path) -> None:
        entry = PlaybookRegistry().register_file(tmp_path / "missing.yaml")
        assert entry.spec is None
        assert entry.validation_errors == ["Cannot read playbook: FileNotFoundError"]

    def test_register_directory(self, tmp_path: Path) -> None:
        (tmp_path / "b.yml").write_text(OTHER, encoding="utf-8")
        (tmp_path / "a.yaml").write_text(GOOD, encoding="utf-8")
        (tmp_path / "notes.txt").write_text("ignore me", encoding="utf-8")
        nested = tmp_path / "nested"
        nested.mkdir()
        (nested / "c.yaml").write_text(PARTIAL, encoding="utf-8")

        flat = PlaybookRegistry()
        assert [e.id for e in flat.register_directory(tmp_path)] == ["a", "b"]

        deep = PlaybookRegistry()
        assert [e.id for e in deep.register_directory(tmp_path, recursive=True)] == ["a", "b", "c"]

    def test_register_directory_missing(self, tmp_path: Path) -> None:
        with pytest.raises(NotADirectoryError):
            PlaybookRegistry().register_directory(tmp_path / "nope")

    def test_id_from_path(self) -> None:
        assert playbook_id_from_path("/x/DeFi_Vault v2.yaml") == "defi-vault-v2"


class TestLookup:
    def test_has_unregister_clear(self, registry: PlaybookRegistry) -> None:
        assert registry.has("good")
        assert registry.unregister("good") is True
        assert registry.unregister("good") is False
        assert not registry.has("good")
        registry.clear()
        assert len(registry) == 0

    def test_get_and_use_counts(self, registry: PlaybookRegistry) -> None:
        registry.get_and_use("other")
        registry.get_and_use("other")
        entry = registry.get("other")
        assert entry.usage_count == 2
        assert entry.last_used is not None
        assert registry.get_and_use("absent") is None

    def test_all_in_registration_order(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.all()] == ["good", "other"]


class TestSearch:
    def test_by_tags(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.search(tags=["tokens", "nothing"])] == ["good"]

    def test_by_author_substring(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.search(author="ali")] == ["good"]

    def test_by_name(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.search(name="other")] == ["other"]

    def test_by_ai(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.search(ai_enabled=False)] == ["other"]

    def test_by_severity(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.search(severity=["Warning"])] == ["good"]

    def test_criteria_combine(self, registry: PlaybookRegistry) -> None:
        assert registry.search(author="bob", tags=["defi"]) == []

    def test_no_criteria_returns_everything(self, registry: PlaybookRegistry) -> None:
        assert len(registry.search()) == 2

    def test_by_tag_and_author(self, registry: PlaybookRegistry) -> None:
        assert [e.id for e in registry.by_tag("governance")] == ["other"]
        assert [e.id for e in registry.by_author("Alice")] == ["good"]
        assert registry.tags() == ["defi", "governance", "tokens"]
        assert registry.authors() == ["Alice", "Bob"]


class TestStats:
    def test_stats(self, registry: PlaybookRegistry) -> None:
        registry.register_builtin("sample", GOOD)
        registry.get_and_use("other")
        stats = registry.stats()
        assert stats.total == 3
        assert stats.by_source == {"string": 2, "builtin": 1}
        assert stats.by_author == {"Alice": 2, "Bob": 1}
        assert stats.by_tag["defi"] == 2
        assert stats.most_used[0] == "other"
        assert stats.recently_added == ["sample", "other", "good"]


class TestValidateAndCompile:
    def test_validate(self, registry: PlaybookRegistry) -> None:
        assert registry.validate("good") == (True, [])
        assert registry.validate("absent") == (False, ["Playbook not found"])

    def test_compile(self, registry: PlaybookRegistry) -> None:
        rules, errors = registry.compile("good")
        assert [r.id for r in rules] == ["loop-call"]
        assert rules[0].playbook == "Good Book"
        assert errors == []

    def test_compile_unknown(self, registry: PlaybookRegistry) -> None:
        with pytest.raises(KeyError):
            registry.compile("absent")

    def test_compile_unparsed(self, registry: PlaybookRegistry) -> None:
        registry.register_string("- not a mapping", "bad")
        with pytest.raises(PlaybookError, match="could not be parsed"):
            registry.compile("bad")
