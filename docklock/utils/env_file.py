"""
.env file loading.

Compose reads a .env file next to the project; docklock loads it into the
process environment once, before parsing, so every interpolation sees the
same values. Variables already set in the environment win.
"""

import logging
import os
import re
from typing import Dict

logger = logging.getLogger(__name__)

# KEY=VALUE, optionally prefixed with "export "
ENV_LINE_PATTERN = re.compile(r'^\s*(?:export\s+)?([A-Za-z_][A-Za-z0-9_.]*)\s*=\s*(.*)$')


def parse_env_file(content: str) -> Dict[str, str]:
    """
    Parse .env content into a dict.

    Supports comments, blank lines, "export" prefixes, single and double
    quoted values and trailing " # comment" on unquoted values.

    Raises:
        ValueError: If a non-comment line is not KEY=VALUE
    """
    values = {}
    for line_no, line in enumerate(content.splitlines(), start=1):
        stripped = line.strip()
        if not stripped or stripped.startswith('#'):
            continue

        match = ENV_LINE_PATTERN.match(line)
        if not match:
            raise ValueError(f"line {line_no}: expected KEY=VALUE, got '{stripped}'")

        key, value = match.group(1), match.group(2).strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ('"', "'"):
            quote = value[0]
            value = value[1:-1]
            if quote == '"':
                value = value.replace('\\n', '\n').replace('\\"', '"')
        elif ' #' in value:
            value = value.split(' #', 1)[0].rstrip()

        values[key] = value
    return values


def load_env_file(path: str, required: bool = False) -> Dict[str, str]:
    """
    Load a .env file into os.environ without overriding existing variables.

    Args:
        path: Path to the .env file
        required: If False, a missing file is not an error

    Returns:
        Dict of variables that were newly set

    Raises:
        FileNotFoundError: If required and the file does not exist
        ValueError: If the file is malformed
    """
    if not os.path.isfile(path):
        if required:
            raise FileNotFoundError(f"env file '{path}' does not exist")
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        values = parse_env_file(f.read())

    loaded = {}
    for key, value in values.items():
        if key not in os.environ:
            os.environ[key] = value
            loaded[key] = value

    logger.debug(f"Loaded {len(loaded)} variables from {path}")
    return loaded
