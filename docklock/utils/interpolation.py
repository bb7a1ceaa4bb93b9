"""
Shell-style variable substitution.

Supports the forms used by Dockerfiles and Compose files:
    $VAR, ${VAR}, ${VAR:-default}, ${VAR-default}, ${VAR:+alt}, ${VAR+alt},
    ${VAR:?error}, ${VAR?error}, and $$ for a literal $ (Compose only).
"""

import logging
import os
import re
from typing import Callable, Mapping, Optional

logger = logging.getLogger(__name__)

# Groups: 1=escaped $, 2=braced name, 3=modifier, 4=modifier word, 5=bare name
VARIABLE_PATTERN = re.compile(
    r'\$(?:(\$)|\{([A-Za-z_][A-Za-z0-9_]*)(?:(:?[-+?])([^}]*))?\}|([A-Za-z_][A-Za-z0-9_]*))'
)

Lookup = Callable[[str], Optional[str]]


def expand(
    value: str,
    lookup: Lookup,
    allow_dollar_escape: bool = True,
    on_missing: Optional[Callable[[str], None]] = None,
) -> str:
    """
    Substitute variables in value.

    Args:
        value: String that may contain variable references
        lookup: Returns the variable's value, or None if it is unset
        allow_dollar_escape: Treat $$ as a literal $
        on_missing: Called with the name of an unset variable that has no default

    Returns:
        value with every reference replaced; unset variables become ""

    Raises:
        ValueError: For ${VAR:?msg} / ${VAR?msg} when VAR is unset (or empty)
    """
    def replace_var(match):
        if match.group(1) is not None:
            return "$" if allow_dollar_escape else match.group(0)

        name = match.group(2) or match.group(5)
        modifier = match.group(3)
        word = match.group(4) or ""
        current = lookup(name)

        if modifier is None:
            if current is None:
                if on_missing is not None:
                    on_missing(name)
                return ""
            return current

        check_empty = modifier.startswith(":")
        is_set = current is not None and (current != "" or not check_empty)
        op = modifier[-1]

        if op == "-":
            return current if is_set else expand(word, lookup, allow_dollar_escape, on_missing)
        if op == "+":
            return expand(word, lookup, allow_dollar_escape, on_missing) if is_set else ""
        # op == "?"
        if not is_set:
            raise ValueError(word or f"required variable '{name}' is missing a value")
        return current

    return VARIABLE_PATTERN.sub(replace_var, value)


def interpolate_env(value: str, environ: Optional[Mapping[str, str]] = None) -> str:
    """
    Substitute variables from the process environment, Compose style.

    Missing variables expand to the empty string and are logged, matching
    docker compose behavior.
    """
    env = os.environ if environ is None else environ

    def warn_missing(name: str) -> None:
        logger.warning(f"The '{name}' variable is not set, defaulting to a blank string")

    return expand(value, env.get, on_missing=warn_missing)
