"""
Plan the rewrite of a Compose file.

Services with "image:" are rewritten in the Compose file itself. Services
with "build:" contribute the images of their Dockerfile, which is rewritten
separately; several services may share one Dockerfile as long as they agree
on its images.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import yaml
from yaml.nodes import MappingNode, Node, ScalarNode, SequenceNode

from docklock.errors import ComposefileParseError, RewriteError
from docklock.generate.compose_parser import load_compose_services
from docklock.generate.lockfile import ComposefileEntry
from docklock.rewrite.dockerfile_writer import render_image_line
from docklock.utils.paths import normalize_path
from docklock.utils.yaml_nodes import (
    add_replacement,
    compose_documents,
    mapping_get,
    replace_spans,
    scalar_replacement,
    span_list,
)

logger = logging.getLogger(__name__)

MERGE_TAG = 'tag:yaml.org,2002:merge'


@dataclass
class ComposefilePlan:
    """Rewritten Compose text plus the Dockerfile entries its build services require"""
    content: str
    dockerfile_entries: Dict[str, List[ComposefileEntry]] = field(default_factory=dict)
    dockerfile_services: Dict[str, str] = field(default_factory=dict)


def _service_value(service_node: Optional[Node], key: str) -> Optional[Node]:
    """Look up key in a service mapping, following "<<" merge keys."""
    value = mapping_get(service_node, key)
    if value is not None:
        return value

    if not isinstance(service_node, MappingNode):
        return None
    for key_node, merged in service_node.value:
        if not isinstance(key_node, ScalarNode) or key_node.tag != MERGE_TAG:
            continue
        sources = merged.value if isinstance(merged, SequenceNode) else [merged]
        for source in sources:
            value = _service_value(source, key)
            if value is not None:
                return value
    return None


def same_images(left: List[ComposefileEntry], right: List) -> bool:
    return [(e.name, e.tag, e.digest) for e in left] == [(e.name, e.tag, e.digest) for e in right]


def plan_composefile(
    content: str,
    native_path: str,
    lockfile_path: str,
    entries: List[ComposefileEntry],
    exclude_tags: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> ComposefilePlan:
    """
    Check a Compose file against its lockfile entries and render it.

    Args:
        content: Current Compose file text
        native_path: Path to the Compose file on disk
        lockfile_path: Path of the Compose file in the lockfile
        entries: Lockfile entries for this Compose file
        exclude_tags: Write name@sha256:digest without the tag
        environ: Interpolation variables, as for load_compose_services()

    Returns:
        ComposefilePlan with the rendered Compose text and, per Dockerfile
        lockfile path, the entries to write into it

    Raises:
        RewriteError: If services and lockfile entries do not line up
    """
    services = load_compose_services(content, native_path, environ)

    entries_by_service: Dict[str, List[ComposefileEntry]] = {}
    for entry in entries:
        entries_by_service.setdefault(entry.service, []).append(entry)

    file_services = {service.name for service in services}
    # A build service whose Dockerfile has only stage references has no entries
    required_services = {service.name for service in services if service.dockerfile_path is None}
    missing = sorted(set(entries_by_service) - file_services)
    extra = sorted(required_services - set(entries_by_service))
    if missing or extra:
        raise RewriteError(
            f"'{lockfile_path}': services do not match the lockfile "
            f"(only in lockfile: {missing}, only in file: {extra})"
        )

    try:
        documents = compose_documents(content)
    except yaml.YAMLError as e:
        raise ComposefileParseError(f"'{lockfile_path}' failed to parse with err: {e}")
    services_node = mapping_get(documents[0] if documents else None, 'services')

    plan = ComposefilePlan(content=content)
    replacements = {}

    for service in services:
        service_entries = entries_by_service.get(service.name, [])

        if service.dockerfile_path is None:
            if len(service_entries) != 1 or service_entries[0].dockerfile:
                raise RewriteError(
                    f"'{lockfile_path}': service '{service.name}' uses an image, "
                    f"expected exactly one lockfile entry without a dockerfile"
                )
            image_node = _service_value(mapping_get(services_node, service.name), 'image')
            if not isinstance(image_node, ScalarNode):
                raise RewriteError(f"'{lockfile_path}': service '{service.name}' has no image to rewrite")
            other = add_replacement(replacements, scalar_replacement(
                content, image_node, render_image_line(service_entries[0], exclude_tags)
            ), service.name)
            if other is not None:
                raise RewriteError(
                    f"'{lockfile_path}': services '{other}' and '{service.name}' share "
                    f"one image but have different images in the lockfile"
                )
            continue

        dockerfile = normalize_path(service.dockerfile_path)
        for entry in service_entries:
            if entry.dockerfile != dockerfile:
                raise RewriteError(
                    f"'{lockfile_path}': service '{service.name}' builds '{dockerfile}' "
                    f"but the lockfile names '{entry.dockerfile or '(none)'}'"
                )

        existing = plan.dockerfile_entries.get(dockerfile)
        if existing is not None and not same_images(existing, service_entries):
            raise RewriteError(
                f"'{lockfile_path}': services '{plan.dockerfile_services[dockerfile]}' and "
                f"'{service.name}' share '{dockerfile}' but have different images in the lockfile"
            )
        plan.dockerfile_entries[dockerfile] = service_entries
        plan.dockerfile_services.setdefault(dockerfile, service.name)

    plan.content = replace_spans(content, span_list(replacements))
    return plan
