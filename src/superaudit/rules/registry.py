# SPDX-License-Identifier: MIT
"""Rule class registry: explicit, ordered list of the built-in detectors."""

from __future__ import annotations

from collections.abc import Iterable

from superaudit.rules.access_control import MissingAccessControlRule
from superaudit.rules.arithmetic import UncheckedArithmeticRule
from superaudit.rules.base import Rule, RuleKind
from superaudit.rules.call_in_loop import ExternalCallInLoopRule
from superaudit.rules.config import ModeConfig
from superaudit.rules.reentrancy import ReentrancyRule
from superaudit.rules.tx_origin import TxOriginAuthRule
from superaudit.rules.unchecked_call import UncheckedCallReturnRule
from superaudit.rules.unreachable_code import UnreachableCodeRule

# Registration order is the tie-breaker for findings at the same location.
RULE_REGISTRY: list[type[Rule]] = [
    TxOriginAuthRule,
    UncheckedCallReturnRule,
    MissingAccessControlRule,
    UncheckedArithmeticRule,
    ReentrancyRule,
    UnreachableCodeRule,
    ExternalCallInLoopRule,
]


def rules_for_mode(mode: ModeConfig) -> list[Rule]:
    """Instantiate the built-ins whose kind the mode enables, in registration order."""
    return [cls() for cls in RULE_REGISTRY if cls.kind in mode.kinds]


def select_rules(rule_ids: Iterable[str]) -> list[Rule]:
    """Instantiate built-ins by id, keeping registration order.

    Raises:
        ValueError: If none of the ids names a built-in rule.
    """
    wanted = {r.strip() for r in rule_ids if r.strip()}
    selected = [cls() for cls in RULE_REGISTRY if cls.id in wanted]
    if not selected:
        msg = f"No rules found matching: {', '.join(sorted(wanted))}"
        raise ValueError(msg)
    return selected


def basic_rules() -> list[Rule]:
    return [cls() for cls in RULE_REGISTRY if cls.kind is RuleKind.AST]
