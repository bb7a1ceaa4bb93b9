"""
Unit tests for the generate pipeline.
"""

import pytest

from conftest import fake_digest
from docklock.config.flags import GenerateFlags, KindFlags
from docklock.errors import RegistryError
from docklock.generate.collector import PathCollector
from docklock.generate.digest_resolver import DigestResolver
from docklock.generate.generator import Generator
from docklock.kind import Kind


@pytest.fixture
def project(write_file):
    write_file("Dockerfile", "FROM busybox\nFROM ubuntu:20.04 AS build\n")
    write_file("docker-compose.yml", """
services:
  web:
    build: .
  db:
    image: postgres:13
""")
    write_file("pod.yaml", "spec:\n  containers:\n    - name: app\n      image: busybox\n")


class TestGenerator:
    """Test Generator"""

    @pytest.mark.asyncio
    async def test_generate_all_kinds(self, project, fake_registry):
        """Should pin every image and query shared images once"""
        generator = Generator.from_flags(GenerateFlags(), fake_registry)

        lockfile = await generator.generate()

        assert lockfile.dockerfiles["Dockerfile"][0].digest == fake_digest("busybox", "latest")
        assert [(e.service, e.dockerfile) for e in lockfile.composefiles["docker-compose.yml"]] == [
            ("db", ""),
            ("web", "Dockerfile"),
            ("web", "Dockerfile"),
        ]
        assert lockfile.kubernetesfiles["pod.yaml"][0].container == "app"
        assert fake_registry.calls[("busybox", "latest")] == 1

    @pytest.mark.asyncio
    async def test_exclude_kind(self, project, fake_registry):
        flags = GenerateFlags(
            composefile=KindFlags(exclude_all=True),
            kubernetesfile=KindFlags(exclude_all=True),
        )
        lockfile = await Generator.from_flags(flags, fake_registry).generate()

        assert list(lockfile.to_dict()) == ["dockerfiles"]

    @pytest.mark.asyncio
    async def test_registry_failure_stops_run(self, project, fake_registry):
        fake_registry.missing.add(("postgres", "13"))
        with pytest.raises(RegistryError, match="postgres"):
            await Generator.from_flags(GenerateFlags(), fake_registry).generate()

    def test_missing_parser(self, workdir, fake_registry):
        collector = PathCollector(Kind.DOCKERFILE, default_paths=["Dockerfile"])
        with pytest.raises(ValueError, match="dockerfiles"):
            Generator([collector], {}, DigestResolver(fake_registry))
