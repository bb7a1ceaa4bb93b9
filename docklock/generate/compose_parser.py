"""
Docker Compose file image parser.

Extracts one image per service that uses "image:", and every image of the
referenced Dockerfile for services that use "build:". Values are
interpolated from the process environment plus the .env file next to the
Compose file, the same way docker compose does.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import aiofiles
import yaml

from docklock.errors import ComposefileParseError
from docklock.generate.dockerfile_parser import DockerfileParser
from docklock.generate.image import ComposefileImage, parse_image_line
from docklock.utils.concurrency import run_bounded
from docklock.utils.env_file import parse_env_file
from docklock.utils.files import read_text
from docklock.utils.interpolation import interpolate_env
from docklock.utils.paths import normalize_path

logger = logging.getLogger(__name__)

REMOTE_CONTEXT_PREFIXES = ('http://', 'https://', 'git://', 'git@', 'github.com/', 'ssh://')


@dataclass
class ComposeService:
    """
    A service that contributes images.

    Exactly one of image_line and dockerfile_path is set.
    """
    name: str
    image_line: Optional[str] = None
    dockerfile_path: Optional[str] = None
    build_args: Dict[str, str] = field(default_factory=dict)


async def compose_environment(path: str) -> Dict[str, str]:
    """
    Variables visible to a Compose file.

    The process environment wins over the .env file in the Compose file's
    directory.

    Raises:
        ComposefileParseError: If the .env file exists but cannot be read or is malformed
    """
    environ = dict(os.environ)
    env_path = os.path.join(os.path.dirname(path), '.env')
    try:
        values = parse_env_file(await read_text(env_path))
    except (FileNotFoundError, IsADirectoryError):
        return environ
    except (OSError, UnicodeDecodeError) as e:
        raise ComposefileParseError(f"failed to read env file '{env_path}': {e}")
    except ValueError as e:
        raise ComposefileParseError(f"'{env_path}' is not a valid env file: {e}")
    for key, value in values.items():
        environ.setdefault(key, value)
    return environ


def _scalar_to_str(value: Any) -> str:
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def _parse_build_args(args: Any, environ: Mapping[str, str], path: str) -> Dict[str, str]:
    """
    Normalize build args given as a list of KEY=VAL / KEY or as a mapping.

    A key without a value takes its value from the environment.
    """
    if args is None:
        return {}

    build_args = {}
    if isinstance(args, list):
        for item in args:
            item = interpolate_env(_scalar_to_str(item), environ)
            if '=' in item:
                key, value = item.split('=', 1)
                build_args[key] = value
            else:
                build_args[item] = environ.get(item, "")
    elif isinstance(args, dict):
        for key, value in args.items():
            key = interpolate_env(_scalar_to_str(key), environ)
            if value is None:
                build_args[key] = environ.get(key, "")
            else:
                build_args[key] = interpolate_env(_scalar_to_str(value), environ)
    else:
        raise ComposefileParseError(f"'{path}': build args must be a list or a mapping")
    return build_args


def load_compose_services(
    content: str,
    path: str,
    environ: Optional[Mapping[str, str]] = None,
) -> List[ComposeService]:
    """
    Parse Compose YAML into the services that contribute images.

    Args:
        content: Compose file text
        path: Path of the Compose file, used to resolve build contexts
        environ: Interpolation variables, see compose_environment(); defaults
            to the process environment

    Returns:
        Services in file order; services with neither image nor build are skipped

    Raises:
        ComposefileParseError: If YAML is invalid or required fields are missing
    """
    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise ComposefileParseError(f"'{path}' failed to parse with err: {e}")

    if not isinstance(data, dict):
        raise ComposefileParseError(f"'{path}': Compose file must be a YAML object")

    # 'version' is optional in current Compose files
    if 'services' not in data:
        raise ComposefileParseError(f"'{path}': Missing 'services' field")

    services_data = data['services'] or {}
    if not isinstance(services_data, dict):
        raise ComposefileParseError(f"'{path}': 'services' must be a mapping")

    if environ is None:
        environ = dict(os.environ)
    compose_dir = os.path.dirname(path)
    services = []

    for service_name, config in services_data.items():
        service_name = str(service_name)
        if not isinstance(config, dict):
            continue

        build = config.get('build')
        if build is not None:
            if isinstance(build, str):
                context, dockerfile, args = build, 'Dockerfile', None
            elif isinstance(build, dict):
                context = _scalar_to_str(build.get('context') or '.')
                dockerfile = _scalar_to_str(build.get('dockerfile') or 'Dockerfile')
                args = build.get('args')
            else:
                raise ComposefileParseError(
                    f"'{path}': service '{service_name}' has an invalid 'build' section"
                )

            context = interpolate_env(context, environ)
            dockerfile = interpolate_env(dockerfile, environ)

            if context.startswith(REMOTE_CONTEXT_PREFIXES):
                logger.warning(
                    f"Skipping service '{service_name}' in {path}: remote build context '{context}'"
                )
                continue

            if not os.path.isabs(context):
                context = os.path.join(compose_dir, context)
            if not os.path.isabs(dockerfile):
                dockerfile = os.path.join(context, dockerfile)

            services.append(ComposeService(
                name=service_name,
                dockerfile_path=os.path.normpath(dockerfile),
                build_args=_parse_build_args(args, environ, path),
            ))
            continue

        image = config.get('image')
        if image is None or image == "":
            continue
        services.append(ComposeService(
            name=service_name,
            image_line=interpolate_env(_scalar_to_str(image), environ),
        ))

    return services


class ComposefileParser:
    """Parser for Docker Compose files"""

    def __init__(self, dockerfile_parser: Optional[DockerfileParser] = None, max_concurrency: int = 8):
        self.dockerfile_parser = dockerfile_parser or DockerfileParser()
        self.max_concurrency = max_concurrency

    async def parse_file(self, path: str) -> List[ComposefileImage]:
        """
        Parse the images of every service in a Compose file.

        Raises:
            ComposefileParseError: If the Compose file cannot be read or parsed
            DockerfileParseError: If a referenced Dockerfile cannot be parsed
        """
        try:
            async with aiofiles.open(path, 'r', encoding='utf-8') as f:
                content = await f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ComposefileParseError(f"failed to read Compose file '{path}': {e}")

        lockfile_path = normalize_path(path)
        environ = await compose_environment(path)
        services = load_compose_services(content, path, environ)

        async def parse_service(service: ComposeService) -> List[ComposefileImage]:
            if service.dockerfile_path is None:
                return [ComposefileImage(
                    image=parse_image_line(service.image_line),
                    path=lockfile_path,
                    service_name=service.name,
                )]

            dockerfile_images = await self.dockerfile_parser.parse_file(
                service.dockerfile_path, build_args=service.build_args
            )
            return [
                ComposefileImage(
                    image=dockerfile_image.image,
                    path=lockfile_path,
                    service_name=service.name,
                    dockerfile_path=dockerfile_image.path,
                    position=dockerfile_image.position,
                )
                for dockerfile_image in dockerfile_images
            ]

        results = await run_bounded(parse_service, services, self.max_concurrency)
        images = [image for service_images in results for image in service_images]
        logger.debug(f"Parsed {len(images)} images from {lockfile_path}")
        return images
