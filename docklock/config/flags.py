"""
Validated options for the generate, verify and rewrite commands.

Options can come from the command line or from a .docker-lock.yml file whose
keys are the long flag names (e.g. "base-dir", "dockerfile-globs").
Everything is checked here, before any file is read or any registry is
contacted.
"""

import logging
import os
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from docklock.errors import ConfigurationError
from docklock.generate.lockfile import DEFAULT_LOCKFILE_NAME
from docklock.kind import Kind
from docklock.utils.paths import is_within

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = ".docker-lock.yml"
DEFAULT_ENV_FILE = ".env"

# Flag names per kind: (manual paths, globs, recursive, exclude all)
KIND_OPTION_NAMES = {
    Kind.DOCKERFILE: ("dockerfiles", "dockerfile-globs", "dockerfile-recursive", "exclude-all-dockerfiles"),
    Kind.COMPOSEFILE: ("composefiles", "composefile-globs", "composefile-recursive", "exclude-all-composefiles"),
    Kind.KUBERNETESFILE: (
        "kubernetesfiles", "kubernetesfile-globs", "kubernetesfile-recursive", "exclude-all-kubernetesfiles",
    ),
}


def _split_list(value: Any) -> Any:
    """Accept "a,b" as well as ["a", "b"]"""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    return value


def _validate_lockfile_name(value: str) -> str:
    if os.path.isabs(value):
        raise ValueError(f"'{value}' lockfile-name does not support absolute paths")
    if "/" in value or "\\" in value:
        raise ValueError(f"'{value}' lockfile-name cannot contain slashes")
    if not value:
        raise ValueError("lockfile-name cannot be empty")
    return value


class KindFlags(BaseModel):
    """Collection options for one kind of file"""
    manual_paths: List[str] = Field(default_factory=list)
    globs: List[str] = Field(default_factory=list)
    recursive: bool = False
    exclude_all: bool = False

    @field_validator('manual_paths', 'globs', mode='before')
    @classmethod
    def split_lists(cls, v):
        return _split_list(v)

    @field_validator('manual_paths')
    @classmethod
    def validate_manual_paths(cls, v: List[str]) -> List[str]:
        for path in v:
            if os.path.isabs(path):
                raise ValueError(f"'{path}' input paths do not support absolute paths")
        return v

    @field_validator('globs')
    @classmethod
    def validate_globs(cls, v: List[str]) -> List[str]:
        for pattern in v:
            if os.path.isabs(pattern):
                raise ValueError(f"'{pattern}' globs do not support absolute paths")
        return v


class GenerateFlags(BaseModel):
    """Options for generate"""
    base_dir: str = "."
    lockfile_name: str = DEFAULT_LOCKFILE_NAME
    config_file: Optional[str] = None  # Docker config.json
    env_file: str = DEFAULT_ENV_FILE
    ignore_missing_digests: bool = False
    update_existing_digests: bool = False
    dockerfile_env_build_args: bool = False
    dockerfile: KindFlags = Field(default_factory=KindFlags)
    composefile: KindFlags = Field(default_factory=KindFlags)
    kubernetesfile: KindFlags = Field(default_factory=KindFlags)

    @field_validator('base_dir')
    @classmethod
    def validate_base_dir(cls, v: str) -> str:
        v = v or "."
        if os.path.isabs(v):
            raise ValueError(f"'{v}' base-dir does not support absolute paths")
        if not is_within(v):
            raise ValueError(f"'{v}' base-dir is outside the current working directory")
        return v

    @field_validator('lockfile_name')
    @classmethod
    def validate_lockfile_name(cls, v: str) -> str:
        return _validate_lockfile_name(v)

    @model_validator(mode='after')
    def validate_manual_paths_within_base_dir(self):
        for kind in Kind:
            for path in self.kind_flags(kind).manual_paths:
                joined = os.path.join(self.base_dir, path)
                if not is_within(joined):
                    raise ValueError(f"'{joined}' is outside the current working directory")
        return self

    def kind_flags(self, kind: Kind) -> KindFlags:
        return {
            Kind.DOCKERFILE: self.dockerfile,
            Kind.COMPOSEFILE: self.composefile,
            Kind.KUBERNETESFILE: self.kubernetesfile,
        }[kind]

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "GenerateFlags":
        """
        Build flags from long flag names, dropping options that are None.

        Raises:
            ConfigurationError: If any option is invalid
        """
        values = _shared_values(options, (
            "base-dir", "lockfile-name", "config-file", "env-file",
            "ignore-missing-digests", "update-existing-digests", "dockerfile-env-build-args",
        ))
        for kind, attr in ((Kind.DOCKERFILE, "dockerfile"), (Kind.COMPOSEFILE, "composefile"),
                           (Kind.KUBERNETESFILE, "kubernetesfile")):
            paths_name, globs_name, recursive_name, exclude_name = KIND_OPTION_NAMES[kind]
            kind_values = {
                "manual_paths": options.get(paths_name),
                "globs": options.get(globs_name),
                "recursive": options.get(recursive_name),
                "exclude_all": options.get(exclude_name),
            }
            values[attr] = {key: value for key, value in kind_values.items() if value is not None}
        return build_flags(cls, values)


class VerifyFlags(BaseModel):
    """Options for verify"""
    lockfile_name: str = DEFAULT_LOCKFILE_NAME
    config_file: Optional[str] = None
    env_file: str = DEFAULT_ENV_FILE
    ignore_missing_digests: bool = False
    exclude_tags: bool = False
    dockerfile_env_build_args: bool = False

    @field_validator('lockfile_name')
    @classmethod
    def validate_lockfile_name(cls, v: str) -> str:
        return _validate_lockfile_name(v)

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "VerifyFlags":
        values = _shared_values(options, (
            "lockfile-name", "config-file", "env-file", "ignore-missing-digests",
            "exclude-tags", "dockerfile-env-build-args",
        ))
        return build_flags(cls, values)


class RewriteFlags(BaseModel):
    """Options for rewrite"""
    lockfile_name: str = DEFAULT_LOCKFILE_NAME
    suffix: str = ""
    temp_dir: Optional[str] = None
    exclude_tags: bool = False

    @field_validator('lockfile_name')
    @classmethod
    def validate_lockfile_name(cls, v: str) -> str:
        return _validate_lockfile_name(v)

    @field_validator('suffix')
    @classmethod
    def validate_suffix(cls, v: str) -> str:
        if "/" in v or "\\" in v:
            raise ValueError(f"'{v}' suffix cannot contain slashes")
        return v

    @field_validator('temp_dir')
    @classmethod
    def validate_temp_dir(cls, v: Optional[str]) -> Optional[str]:
        if v and not os.path.isdir(v):
            raise ValueError(f"'{v}' tempdir does not exist or is not a directory")
        return v or None

    @classmethod
    def from_options(cls, options: Dict[str, Any]) -> "RewriteFlags":
        values = _shared_values(options, ("lockfile-name", "suffix", "exclude-tags"))
        if options.get("tempdir") is not None:
            values["temp_dir"] = options["tempdir"]
        return build_flags(cls, values)


def _shared_values(options: Dict[str, Any], names) -> Dict[str, Any]:
    return {
        name.replace("-", "_"): options[name]
        for name in names
        if options.get(name) is not None
    }


def build_flags(model_cls, values: Dict[str, Any]):
    """
    Validate values into model_cls.

    Raises:
        ConfigurationError: With every validation failure in the message
    """
    try:
        return model_cls(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'flags'}: {error['msg']}"
            for error in e.errors()
        )
        raise ConfigurationError(f"invalid options: {problems}")


def load_config_file(path: Optional[str]) -> Dict[str, Any]:
    """
    Read flag defaults from a YAML config file.

    Args:
        path: Config file path; when None, .docker-lock.yml is used if present

    Returns:
        Dict keyed by long flag names (underscores are accepted too)

    Raises:
        ConfigurationError: If an explicitly named file is missing or the
            file is not a YAML mapping
    """
    if path is None:
        path = DEFAULT_CONFIG_FILE
        if not os.path.isfile(path):
            return {}

    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f)
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"failed to read config file '{path}': {e}")
    except yaml.YAMLError as e:
        raise ConfigurationError(f"config file '{path}' is not valid YAML: {e}")

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"config file '{path}' must be a YAML mapping")

    logger.debug(f"Loaded {len(data)} options from {path}")
    return {str(key).replace("_", "-"): value for key, value in data.items()}
