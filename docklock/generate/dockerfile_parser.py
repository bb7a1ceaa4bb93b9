"""
Dockerfile image parser.

Walks the instructions of a Dockerfile once, tracking global ARG defaults
(ARGs before the first FROM) and build stage names, and emits one image per
FROM that refers to a registry image rather than an earlier stage.

The tokenizer keeps the character offsets of every argument so the rewriter
can replace an image in place and leave the rest of the file untouched.
"""

import logging
import os
import re
import shlex
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Set

import aiofiles

from docklock.errors import DockerfileParseError
from docklock.generate.image import DockerfileImage, Image, parse_image_line
from docklock.utils.interpolation import expand
from docklock.utils.paths import normalize_path

logger = logging.getLogger(__name__)

DIRECTIVE_PATTERN = re.compile(r'^#\s*([a-zA-Z][a-zA-Z0-9]*)\s*=\s*(.+?)\s*$')
HEREDOC_PATTERN = re.compile(r'<<(-?)(["\']?)([A-Za-z_][A-Za-z0-9_]*)\2')
TOKEN_PATTERN = re.compile(r'\S+')


@dataclass
class Token:
    """A whitespace separated word and its [start, end) offsets in the file."""
    value: str
    start: int
    end: int


@dataclass
class Instruction:
    keyword: str
    args: List[Token]
    args_text: str
    line: int


@dataclass
class FromImage:
    """A FROM instruction that names a registry image (not a build stage)."""
    image: Image
    token: Token
    line: int


def tokenize_dockerfile(content: str) -> List[Instruction]:
    """
    Split a Dockerfile into instructions.

    Handles the escape parser directive, line continuations, comment and
    blank lines inside continuations, and skips heredoc bodies.
    """
    escape = '\\'
    instructions = []
    lines = content.splitlines(keepends=True)

    # Parser directives are only honored before anything else
    for line in lines:
        match = DIRECTIVE_PATTERN.match(line.strip())
        if not match:
            break
        if match.group(1).lower() == 'escape' and match.group(2) in ('\\', '`'):
            escape = match.group(2)

    segments = []  # (text, offset) pieces of the current logical line
    start_line = 0
    heredocs = []
    offset = 0

    for line_no, line in enumerate(lines, start=1):
        line_offset = offset
        offset += len(line)
        body = line.rstrip('\r\n')
        stripped = body.strip()

        if heredocs:
            delimiter, strip_tabs = heredocs[0]
            if (body.lstrip('\t') if strip_tabs else body) == delimiter:
                heredocs.pop(0)
            continue

        if not segments and (not stripped or stripped.startswith('#')):
            continue
        if segments and (not stripped or stripped.startswith('#')):
            # Comments and blank lines are dropped inside a continuation
            continue

        if not segments:
            start_line = line_no

        trimmed = body.rstrip()
        if trimmed.endswith(escape):
            segments.append((trimmed[:-1], line_offset))
            continue

        segments.append((body, line_offset))
        instruction = _build_instruction(segments, start_line)
        segments = []
        if instruction is None:
            continue
        instructions.append(instruction)

        if instruction.keyword not in ('FROM', 'ARG'):
            for match in HEREDOC_PATTERN.finditer(instruction.args_text):
                heredocs.append((match.group(3), match.group(1) == '-'))

    if segments:
        instruction = _build_instruction(segments, start_line)
        if instruction is not None:
            instructions.append(instruction)

    return instructions


def _build_instruction(segments, line: int) -> Optional[Instruction]:
    logical = []
    offsets = []
    for text, offset in segments:
        logical.append(text)
        offsets.extend(range(offset, offset + len(text)))
    logical_text = ''.join(logical)

    matches = list(TOKEN_PATTERN.finditer(logical_text))
    if not matches:
        return None

    tokens = [
        Token(value=m.group(0), start=offsets[m.start()], end=offsets[m.end() - 1] + 1)
        for m in matches
    ]
    keyword = tokens[0].value.upper()
    args_text = logical_text[matches[0].end():].strip()
    return Instruction(keyword=keyword, args=tokens[1:], args_text=args_text, line=line)


def strip_quotes(value: str) -> str:
    """
    Strip quotes around an ARG name or value.

    Dockerfiles accept quotes on either side, e.g.
        ARG "IMAGE"="busybox"
    """
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        return value.strip('"')
    return value


def scan_from_images(
    content: str,
    path: str,
    build_args: Optional[Mapping[str, str]] = None,
) -> List[FromImage]:
    """
    Find every FROM that names a registry image, in source order.

    Args:
        content: Dockerfile text
        path: Path used in error messages
        build_args: Overrides for global ARG defaults (e.g. Compose args)

    Returns:
        FromImage list; stage references like "FROM builder" are skipped

    Raises:
        DockerfileParseError: For FROM/ARG instructions without arguments
            or ARG values that cannot be tokenized
    """
    build_args = build_args or {}
    global_args: Dict[str, str] = {}
    stages: Set[str] = set()
    global_context = True
    images = []

    def lookup(name: str) -> Optional[str]:
        if name not in global_args:
            return None
        return build_args.get(name, global_args[name])

    for instruction in tokenize_dockerfile(content):
        if instruction.keyword == 'ARG':
            if not instruction.args:
                raise DockerfileParseError(
                    f"invalid ARG instruction in Dockerfile '{path}' (line {instruction.line})"
                )
            if not global_context:
                # Local ARGs do not override global defaults for FROM lines
                continue
            try:
                words = shlex.split(instruction.args_text, posix=True)
            except ValueError as e:
                raise DockerfileParseError(
                    f"'{path}' failed to parse ARG on line {instruction.line}: {e}"
                )
            for word in words:
                if '=' in word:
                    name, value = word.split('=', 1)
                    global_args[strip_quotes(name)] = strip_quotes(value)
                else:
                    global_args[strip_quotes(word)] = ""

        elif instruction.keyword == 'FROM':
            args = [token for token in instruction.args if not token.value.startswith('--')]
            if not args:
                raise DockerfileParseError(
                    f"invalid FROM instruction in Dockerfile '{path}' (line {instruction.line})"
                )
            global_context = False

            image_token = args[0]
            if image_token.value.lower() not in stages:
                try:
                    image_line = expand(image_token.value, lookup, allow_dollar_escape=False)
                except ValueError as e:
                    raise DockerfileParseError(f"'{path}' line {instruction.line}: {e}")
                images.append(FromImage(
                    image=parse_image_line(image_line),
                    token=image_token,
                    line=instruction.line,
                ))

            # FROM <image> AS <stage>, FROM <stage> AS <another stage>
            if len(args) >= 3 and args[1].value.lower() == 'as':
                stages.add(args[2].value.lower())

    return images


class DockerfileParser:
    """Parser for Dockerfiles"""

    def __init__(self, use_env_build_args: bool = False):
        """
        Args:
            use_env_build_args: Use the process environment as build args for
                Dockerfiles that are not referenced through a Compose file
        """
        self.use_env_build_args = use_env_build_args

    async def parse_file(
        self,
        path: str,
        build_args: Optional[Mapping[str, str]] = None,
    ) -> List[DockerfileImage]:
        """
        Parse the images of a Dockerfile.

        Args:
            path: Path to the Dockerfile
            build_args: Overrides for global ARG defaults; when None and
                use_env_build_args is set, the process environment is used

        Returns:
            One DockerfileImage per FROM that names a registry image

        Raises:
            DockerfileParseError: If the file cannot be read or parsed
        """
        if build_args is None and self.use_env_build_args:
            build_args = dict(os.environ)

        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise DockerfileParseError(f"failed to read Dockerfile '{path}': {e}")

        lockfile_path = normalize_path(path)
        from_images = scan_from_images(content, lockfile_path, build_args)
        logger.debug(f"Parsed {len(from_images)} images from {lockfile_path}")

        return [
            DockerfileImage(image=from_image.image, path=lockfile_path, position=position)
            for position, from_image in enumerate(from_images)
        ]
