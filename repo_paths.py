#!/usr/bin/env python3
# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation

"""
Repository path sanitization shared by every command that resolves roots.

Root lists arrive from the command line and from YAML configuration. Both
sources pass through sanitize_repository_paths() so trimming, home-directory
expansion and boolean-literal rejection happen in exactly one place.
"""

import os
from pathlib import Path
from typing import Callable, Iterable, List, Optional

BOOLEAN_LITERALS = frozenset({"true", "false"})


def default_home_directory() -> Optional[str]:
    """Return the current user's home directory, or None when unknown."""
    try:
        return str(Path.home())
    except RuntimeError:
        return None


def expand_home(
    candidate: str, home_provider: Callable[[], Optional[str]] = default_home_directory
) -> str:
    """Expand a leading ``~`` or ``~/`` to the user's home directory.

    ``~user`` forms are returned untouched.
    """
    if not candidate.startswith("~"):
        return candidate

    home = home_provider()
    if not home:
        return candidate

    if candidate == "~":
        return home

    for prefix in ("~/", "~" + os.sep):
        if candidate.startswith(prefix):
            return os.path.join(home, candidate[len(prefix):])

    return candidate


def is_boolean_literal(candidate: str) -> bool:
    """True for values such as ``true``/``False`` that leak in from flag parsing."""
    return candidate.strip().lower() in BOOLEAN_LITERALS


def sanitize_repository_paths(
    candidates: Optional[Iterable[str]],
    exclude_boolean_literals: bool = True,
    home_provider: Callable[[], Optional[str]] = default_home_directory,
) -> List[str]:
    """
    Normalize a list of repository root candidates.

    Args:
        candidates: Raw values from CLI arguments or configuration
        exclude_boolean_literals: Drop ``true``/``false`` entries
        home_provider: Home-directory lookup, replaceable in tests

    Returns:
        Trimmed, home-expanded paths in their original order, without blanks
    """
    sanitized: List[str] = []
    for raw in candidates or []:
        if raw is None:
            continue
        trimmed = str(raw).strip()
        if not trimmed:
            continue
        if exclude_boolean_literals and is_boolean_literal(trimmed):
            continue
        expanded = expand_home(trimmed, home_provider)
        if expanded:
            sanitized.append(expanded)
    return sanitized


def normalize_absolute(path: str) -> str:
    """Clean a path and make it absolute without resolving symlinks."""
    return os.path.abspath(os.path.normpath(path))
