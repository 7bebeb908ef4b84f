# SPDX-License-Identifier: MIT
"""Property-based fuzz tests for the Solidity parser, the engine and the playbook parser.

Uses hypothesis to generate random inputs and verify that parsers fail only
with their documented error types and that analysis never raises.
"""

from __future__ import annotations

import os
import string

import yaml
from hypothesis import given, settings
from hypothesis import strategies as st

from superaudit.playbooks.compiler import render_message
from superaudit.playbooks.parser import parse_playbook
from superaudit.playbooks.schema import PlaybookError, PlaybookSpec
from superaudit.rules.engine import RuleEngine
from superaudit.solidity.parser import ParseError, parse

# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------

# CI runs 1k examples; set FUZZ_SLOW=1 for 10k (local deep run)
_MAX_EXAMPLES = 10_000 if os.environ.get("FUZZ_SLOW") else 1_000
# Full analysis is much slower per example.
_MAX_ANALYSIS_EXAMPLES = _MAX_EXAMPLES // 10

_PRINTABLE = st.text(alphabet=string.printable, min_size=0, max_size=300)

_TOKEN = st.sampled_from(
    [
        "contract", "C", "is", "B", "{", "}", "(", ")", "[", "]", ";", ",", ".",
        "function", "f", "modifier", "m", "_", "public", "external", "view", "payable",
        "returns", "uint256", "address", "mapping", "=>", "bool", "x", "y", "msg", "sender",
        "tx", "origin", "call", "transfer", "value", ":", "=", "+=", "-", "+", "*", "==",
        "!", "?", "if", "else", "for", "while", "do", "return", "revert", "require",
        "unchecked", "emit", "try", "catch", "assembly", "0", "1", "1e18", '""', "'a'",
        "pragma", "solidity", "^0.8.0", "import", "// c\n", "/* c */", "\n",
    ]
)

_TOKEN_SOUP = st.builds(" ".join, st.lists(_TOKEN, min_size=0, max_size=80))

_STATEMENT = st.sampled_from(
    [
        "x = y;",
        "x += 1;",
        "return;",
        "revert();",
        'require(msg.sender == owner, "no");',
        "require(tx.origin == owner);",
        'msg.sender.call{value: x}("");',
        "payable(msg.sender).transfer(x);",
        "unchecked { x -= 1; }",
        "if (x > 0) { x = 0; } else { return; }",
        "for (uint256 i = 0; i < x; i++) { y += i; }",
        "while (true) { break; }",
        "do { x--; } while (x > 0);",
        "selfdestruct(payable(owner));",
    ]
)

_FUNCTION = st.builds(
    lambda name, body: f"    function {name}() public {{ {' '.join(body)} }}\n",
    st.sampled_from(["a", "b", "setOwner", "withdraw", "init"]),
    st.lists(_STATEMENT, min_size=0, max_size=8),
)

_CONTRACT = st.builds(
    lambda functions: (
        "pragma solidity ^0.8.0;\n"
        "contract Fuzz {\n"
        "    address owner;\n"
        "    uint256 x;\n"
        "    uint256 y;\n" + "".join(functions) + "}\n"
    ),
    st.lists(_FUNCTION, min_size=0, max_size=4),
)

_YAML_SCALAR = st.one_of(
    st.none(),
    st.booleans(),
    st.integers(min_value=-10, max_value=10),
    st.text(alphabet=string.ascii_letters + "-*{}. ", max_size=20),
)

_YAML_VALUE = st.recursive(
    _YAML_SCALAR,
    lambda children: st.one_of(
        st.lists(children, max_size=4),
        st.dictionaries(st.text(alphabet=string.ascii_lowercase + "-", min_size=1, max_size=10), children, max_size=4),
    ),
    max_leaves=20,
)

_CHECK = st.fixed_dictionaries(
    {},
    optional={
        "id": st.one_of(st.text(alphabet=string.ascii_lowercase + "-", min_size=1, max_size=12), _YAML_SCALAR),
        "severity": st.one_of(st.sampled_from(["error", "Warning", "INFO", "fatal"]), _YAML_SCALAR),
        "target": st.one_of(st.sampled_from(["function", "call", ["contract", "call"], "widget"]), _YAML_VALUE),
        "scope": st.sampled_from(["file", "project", "global"]),
        "match": st.one_of(
            st.lists(st.sampled_from(["inside-loop", "checks-caller", {"not": "inside-loop"}, {"a": 1, "b": 2}])),
            _YAML_VALUE,
        ),
        "message": _YAML_SCALAR,
    },
)

_PLAYBOOK = st.fixed_dictionaries(
    {},
    optional={
        "version": st.sampled_from(["1.0", 1.0, "2.0"]),
        "meta": st.one_of(
            st.fixed_dictionaries({"name": st.text(alphabet=string.ascii_letters + " ", max_size=10)}),
            _YAML_VALUE,
        ),
        "checks": st.one_of(st.lists(_CHECK, max_size=5), _YAML_VALUE),
    },
)


# ---------------------------------------------------------------------------
# Fuzz: Solidity parser raises only ParseError
# ---------------------------------------------------------------------------


@given(text=_PRINTABLE)
@settings(max_examples=_MAX_EXAMPLES)
def test_fuzz_parse_arbitrary_text(text: str) -> None:
    """parse() either returns a unit or raises ParseError with a position."""
    try:
        unit = parse("Fuzz.sol", text)
    except ParseError as exc:
        assert exc.line >= 1
        assert exc.column >= 1
        return
    assert unit.path == "Fuzz.sol"


@given(text=_TOKEN_SOUP)
@settings(max_examples=_MAX_EXAMPLES)
def test_fuzz_parse_token_soup(text: str) -> None:
    """Solidity-shaped garbage never escapes as anything but ParseError."""
    try:
        unit = parse("Fuzz.sol", text)
    except ParseError:
        return
    for node in unit.root.walk():
        start, end = node.span
        assert 0 <= start <= end <= len(text)


# ---------------------------------------------------------------------------
# Fuzz: engine never raises on parsed input
# ---------------------------------------------------------------------------


@given(source=_CONTRACT)
@settings(max_examples=_MAX_ANALYSIS_EXAMPLES, deadline=None)
def test_fuzz_engine_on_generated_contracts(source: str) -> None:
    """Generated contracts parse, and every built-in rule runs without failure."""
    unit = parse("Fuzz.sol", source)
    result = RuleEngine().run([unit])
    assert result.failures == []
    keys = [(f.file, f.line, f.column) for f in result.findings]
    assert keys == sorted(keys)


@given(source=_CONTRACT)
@settings(max_examples=_MAX_ANALYSIS_EXAMPLES, deadline=None)
def test_fuzz_engine_is_deterministic(source: str) -> None:
    unit = parse("Fuzz.sol", source)
    engine = RuleEngine()
    assert engine.run([unit]).findings == engine.run([unit]).findings


# ---------------------------------------------------------------------------
# Fuzz: playbook parser raises only PlaybookError and is idempotent
# ---------------------------------------------------------------------------


@given(document=_PLAYBOOK)
@settings(max_examples=_MAX_EXAMPLES)
def test_fuzz_parse_playbook_documents(document: dict) -> None:
    text = yaml.safe_dump(document)
    try:
        first = parse_playbook(text)
    except PlaybookError:
        return
    spec, errors = first
    assert isinstance(spec, PlaybookSpec)
    assert len({c.id for c in spec.checks}) == len(spec.checks)
    assert first == parse_playbook(text)
    entries = document.get("checks")
    if isinstance(entries, list):
        assert len(spec.checks) + len(errors) == len(entries)


@given(text=_PRINTABLE)
@settings(max_examples=_MAX_EXAMPLES)
def test_fuzz_parse_playbook_arbitrary_text(text: str) -> None:
    try:
        parse_playbook(text)
    except PlaybookError:
        pass


@given(template=_PRINTABLE)
@settings(max_examples=_MAX_EXAMPLES)
def test_fuzz_render_message(template: str) -> None:
    """Templates never raise; text without known placeholders is unchanged."""
    values = {"contract": "C", "function": "f", "name": "n", "file": "a.sol", "line": "1", "rule": "r"}
    rendered = render_message(template, values)
    if not any(f"{{{key}}}" in template for key in values):
        assert rendered == template
