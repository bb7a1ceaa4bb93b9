"""
docker-lock command line interface.

    docker-lock generate [options]
    docker-lock verify [options]
    docker-lock rewrite [options]
    docker-lock version
"""

import argparse
import asyncio
import logging
import sys
from typing import Any, Dict, List, Optional

from docklock import __version__
from docklock.config.flags import (
    DEFAULT_ENV_FILE,
    GenerateFlags,
    RewriteFlags,
    VerifyFlags,
    load_config_file,
)
from docklock.config.settings import Settings, setup_logging
from docklock.errors import ConfigurationError, DockerLockError
from docklock.generate.generator import Generator
from docklock.generate.lockfile import DEFAULT_LOCKFILE_NAME, Lockfile
from docklock.registry.manager import build_registry_manager
from docklock.rewrite.rewriter import Rewriter
from docklock.utils.env_file import load_env_file
from docklock.verify.verifier import Verifier

logger = logging.getLogger(__name__)


def _add_registry_arguments(parser: argparse.ArgumentParser):
    parser.add_argument("--config-file", help="Path to Docker's config.json for registry credentials")
    parser.add_argument("--env-file", help=f"Path to a .env file (default: {DEFAULT_ENV_FILE})")
    parser.add_argument("--ignore-missing-digests", action="store_true", default=None,
                        help="Do not fail if a digest cannot be found")
    parser.add_argument("--dockerfile-env-build-args", action="store_true", default=None,
                        help="Use environment variables as build args for Dockerfiles")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="docker-lock",
        description="Pin image tags to digests in Dockerfiles, Compose files and Kubernetes manifests",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR (default: $DOCKER_LOCK_LOG_LEVEL or INFO)")
    parser.add_argument("--config", help="YAML file with option defaults (default: .docker-lock.yml if present)")
    subparsers = parser.add_subparsers(dest="command", required=True)

    generate = subparsers.add_parser("generate", help="Generate a lockfile")
    generate.add_argument("--base-dir", "-b", help="Top level directory to collect files from")
    generate.add_argument("--lockfile-name", "-l", help=f"Lockfile to write (default: {DEFAULT_LOCKFILE_NAME})")
    for kind, plural in (("dockerfile", "dockerfiles"), ("composefile", "composefiles"),
                         ("kubernetesfile", "kubernetesfiles")):
        generate.add_argument(f"--{plural}", help=f"Comma-separated {plural} to collect")
        generate.add_argument(f"--{kind}-globs", help=f"Comma-separated glob patterns for {plural}")
        generate.add_argument(f"--{kind}-recursive", action="store_true", default=None,
                              help=f"Recursively collect {plural} from the base directory")
        generate.add_argument(f"--exclude-all-{plural}", action="store_true", default=None,
                              help=f"Do not collect {plural}")
    generate.add_argument("--update-existing-digests", action="store_true", default=None,
                          help="Query registries even for images that already have a digest")
    _add_registry_arguments(generate)

    verify = subparsers.add_parser("verify", help="Verify that a lockfile is up to date")
    verify.add_argument("--lockfile-name", "-l", help=f"Lockfile to verify (default: {DEFAULT_LOCKFILE_NAME})")
    verify.add_argument("--exclude-tags", "-e", action="store_true", default=None,
                        help="Do not compare tags (for files rewritten with --exclude-tags)")
    _add_registry_arguments(verify)

    rewrite = subparsers.add_parser("rewrite", help="Rewrite files with digests from a lockfile")
    rewrite.add_argument("--lockfile-name", "-l", help=f"Lockfile to read (default: {DEFAULT_LOCKFILE_NAME})")
    rewrite.add_argument("--suffix", "-s", help="Write to new files with this suffix instead of overwriting")
    rewrite.add_argument("--tempdir", "-t", help="Directory for staged files (same filesystem as outputs)")
    rewrite.add_argument("--exclude-tags", "-e", action="store_true", default=None,
                         help="Write name@digest without the tag")

    subparsers.add_parser("version", help="Print the version")
    return parser


def merge_options(args: argparse.Namespace, config: Dict[str, Any]) -> Dict[str, Any]:
    """Config file values are defaults, command line values win"""
    options = dict(config)
    for name, value in vars(args).items():
        if name in ("command", "config", "log_level"):
            continue
        if value is not None:
            options[name.replace("_", "-")] = value
    return options


def load_env(env_file: str):
    """
    Load the .env file; only the default one may be missing.

    Raises:
        ConfigurationError: If an explicit env file is missing or malformed
    """
    try:
        load_env_file(env_file, required=env_file != DEFAULT_ENV_FILE)
    except (FileNotFoundError, ValueError) as e:
        raise ConfigurationError(f"failed to load env file '{env_file}': {e}")


async def run_generate(options: Dict[str, Any]):
    flags = GenerateFlags.from_options(options)
    load_env(flags.env_file)
    settings = Settings(config_file=flags.config_file)
    settings.validate()

    manager = build_registry_manager(settings)
    try:
        generator = Generator.from_flags(flags, manager, max_concurrency=settings.max_concurrency)
        lockfile = await generator.generate()
    finally:
        await manager.close()
    await lockfile.write(flags.lockfile_name)


async def run_verify(options: Dict[str, Any]):
    flags = VerifyFlags.from_options(options)
    load_env(flags.env_file)
    settings = Settings(config_file=flags.config_file)
    settings.validate()

    lockfile = await Lockfile.read(flags.lockfile_name)
    manager = build_registry_manager(settings)
    try:
        verifier = Verifier(
            manager,
            exclude_tags=flags.exclude_tags,
            ignore_missing_digests=flags.ignore_missing_digests,
            dockerfile_env_build_args=flags.dockerfile_env_build_args,
            max_concurrency=settings.max_concurrency,
        )
        await verifier.verify(lockfile)
    finally:
        await manager.close()


async def run_rewrite(options: Dict[str, Any]):
    flags = RewriteFlags.from_options(options)
    settings = Settings()
    settings.validate()

    lockfile = await Lockfile.read(flags.lockfile_name)
    rewriter = Rewriter(
        exclude_tags=flags.exclude_tags,
        suffix=flags.suffix,
        temp_dir=flags.temp_dir,
        max_concurrency=settings.max_concurrency,
    )
    await rewriter.rewrite(lockfile)


COMMANDS = {
    "generate": run_generate,
    "verify": run_verify,
    "rewrite": run_rewrite,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "version":
        print(__version__)
        return 0

    try:
        setup_logging(args.log_level or Settings().log_level)
        config = load_config_file(args.config)
        options = merge_options(args, config)
        asyncio.run(COMMANDS[args.command](options))
    except DockerLockError as e:
        logger.error(str(e))
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
