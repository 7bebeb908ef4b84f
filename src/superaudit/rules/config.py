# SPDX-License-Identifier: MIT
"""Profile and analysis-mode configuration for the rule engine."""

from __future__ import annotations

import os
from dataclasses import dataclass

from superaudit.rules.base import RuleKind, Severity


@dataclass(frozen=True)
class ProfileConfig:
    """Configuration for a gate profile: the lowest severity that fails the run."""

    name: str
    fail_on: Severity


PROFILES: dict[str, ProfileConfig] = {
    "general": ProfileConfig(name="general", fail_on=Severity.ERROR),
    "strict": ProfileConfig(name="strict", fail_on=Severity.WARNING),
    "pedantic": ProfileConfig(name="pedantic", fail_on=Severity.INFO),
}


@dataclass(frozen=True)
class ModeConfig:
    """Which built-in rule kinds an analysis mode activates."""

    name: str
    kinds: frozenset[RuleKind]


MODES: dict[str, ModeConfig] = {
    "basic": ModeConfig(name="basic", kinds=frozenset({RuleKind.AST})),
    "advanced": ModeConfig(name="advanced", kinds=frozenset({RuleKind.AST, RuleKind.CFG})),
    "full": ModeConfig(name="full", kinds=frozenset({RuleKind.AST, RuleKind.CFG, RuleKind.PROJECT})),
}


def load_profile(cli_profile: str | None = None) -> ProfileConfig:
    """Load profile config with CLI > env > default priority.

    Args:
        cli_profile: Profile name from CLI --profile flag (highest priority).

    Returns:
        ProfileConfig for the resolved profile.

    Raises:
        ValueError: If the profile name is not recognized.
    """
    name = cli_profile or os.environ.get("SUPERAUDIT_PROFILE", "general")
    if name not in PROFILES:
        msg = f"Unknown profile: {name!r}. Valid profiles: {sorted(PROFILES.keys())}"
        raise ValueError(msg)
    return PROFILES[name]


def load_mode(cli_mode: str | None = None) -> ModeConfig:
    """Load analysis mode with CLI > env > default priority.

    Raises:
        ValueError: If the mode name is not recognized.
    """
    name = cli_mode or os.environ.get("SUPERAUDIT_MODE", "full")
    if name not in MODES:
        msg = f"Unknown mode: {name!r}. Valid modes: {sorted(MODES.keys())}"
        raise ValueError(msg)
    return MODES[name]


def log_level() -> str:
    return os.environ.get("SUPERAUDIT_LOG_LEVEL", "WARNING").upper()
