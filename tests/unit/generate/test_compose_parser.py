"""
Unit tests for the Compose file parser.
"""

import pytest

from docklock.errors import ComposefileParseError, DockerfileParseError
from docklock.generate.compose_parser import (
    ComposefileParser,
    compose_environment,
    load_compose_services,
)


class TestLoadComposeServices:
    """Test service extraction from Compose YAML"""

    def test_image_and_build_services(self, workdir):
        """Should resolve build contexts relative to the Compose file"""
        content = """
services:
  db:
    image: postgres:13
  web:
    build: ./web
  api:
    build:
      context: api
      dockerfile: docker/Dockerfile.prod
  worker:
    command: run
"""
        services = load_compose_services(content, "stack/docker-compose.yml")

        assert [(s.name, s.image_line, s.dockerfile_path) for s in services] == [
            ("db", "postgres:13", None),
            ("web", None, "stack/web/Dockerfile"),
            ("api", None, "stack/api/docker/Dockerfile.prod"),
        ]

    def test_build_takes_precedence(self, workdir):
        content = "services:\n  web:\n    image: myorg/web\n    build: .\n"
        service = load_compose_services(content, "docker-compose.yml")[0]
        assert service.image_line is None
        assert service.dockerfile_path == "Dockerfile"

    def test_args_as_list_and_mapping(self, workdir, monkeypatch):
        """Should accept both arg forms and fill bare keys from the environment"""
        monkeypatch.setenv("FROM_ENV", "alpine")
        content = """
services:
  a:
    build:
      context: .
      args:
        - IMAGE=busybox
        - FROM_ENV
  b:
    build:
      context: .
      args:
        IMAGE: ubuntu
        FROM_ENV:
        DEBUG: true
"""
        a, b = load_compose_services(content, "docker-compose.yml")
        assert a.build_args == {"IMAGE": "busybox", "FROM_ENV": "alpine"}
        assert b.build_args == {"IMAGE": "ubuntu", "FROM_ENV": "alpine", "DEBUG": "true"}

    @pytest.mark.asyncio
    async def test_env_file_next_to_compose(self, write_file, monkeypatch):
        """Should read .env from the Compose directory without overriding the environment"""
        monkeypatch.setenv("TAG", "from-env")
        write_file("stack/.env", "IMAGE=redis\nTAG=from-file\n")
        content = "services:\n  cache:\n    image: ${IMAGE}:${TAG}\n"

        environ = await compose_environment("stack/docker-compose.yml")
        service = load_compose_services(content, "stack/docker-compose.yml", environ)[0]

        assert service.image_line == "redis:from-env"

    def test_remote_context_skipped(self, workdir):
        content = "services:\n  web:\n    build: https://github.com/org/repo.git\n"
        assert load_compose_services(content, "docker-compose.yml") == []

    @pytest.mark.parametrize("content,message", [
        ("- a\n- b\n", "must be a YAML object"),
        ("version: '3'\n", "Missing 'services' field"),
        ("services:\n  - web\n", "'services' must be a mapping"),
        ("services: [\n", "failed to parse"),
    ])
    def test_invalid_files(self, workdir, content, message):
        with pytest.raises(ComposefileParseError, match=message):
            load_compose_services(content, "docker-compose.yml")


class TestComposefileParser:
    """Test parsing Compose files from disk"""

    @pytest.mark.asyncio
    async def test_build_service_images(self, write_file):
        """Should attach Dockerfile images to the service that builds them"""
        write_file("docker-compose.yml", """
services:
  web:
    build:
      context: web
      args:
        BASE: node:14
  db:
    image: postgres
""")
        write_file("web/Dockerfile", "ARG BASE=node:12\nFROM $BASE AS build\nFROM nginx:1.19\n")

        images = await ComposefileParser().parse_file("docker-compose.yml")

        assert [
            (i.service_name, i.dockerfile_path, i.position, i.image.image_line)
            for i in images
        ] == [
            ("web", "web/Dockerfile", 0, "node:14"),
            ("web", "web/Dockerfile", 1, "nginx:1.19"),
            ("db", "", 0, "postgres:latest"),
        ]
        assert all(i.path == "docker-compose.yml" for i in images)

    @pytest.mark.asyncio
    async def test_missing_dockerfile(self, write_file):
        write_file("docker-compose.yml", "services:\n  web:\n    build: .\n")
        with pytest.raises(DockerfileParseError):
            await ComposefileParser().parse_file("docker-compose.yml")

    @pytest.mark.asyncio
    async def test_missing_compose_file(self, workdir):
        with pytest.raises(ComposefileParseError, match="failed to read"):
            await ComposefileParser().parse_file("docker-compose.yml")

    @pytest.mark.asyncio
    async def test_env_file_applied(self, write_file):
        """Should interpolate image lines from the .env file next to the Compose file"""
        write_file("stack/docker-compose.yml", "services:\n  cache:\n    image: ${DL_TEST_IMAGE}\n")
        write_file("stack/.env", "DL_TEST_IMAGE=redis:6\n")

        images = await ComposefileParser().parse_file("stack/docker-compose.yml")

        assert [i.image.image_line for i in images] == ["redis:6"]

    @pytest.mark.asyncio
    async def test_undecodable_compose_file(self, workdir):
        """Should raise ComposefileParseError naming a file that is not UTF-8"""
        (workdir / "docker-compose.yml").write_bytes(b"\xff\xfeservices: {}\n")
        with pytest.raises(ComposefileParseError, match="docker-compose.yml"):
            await ComposefileParser().parse_file("docker-compose.yml")

    @pytest.mark.asyncio
    async def test_undecodable_env_file(self, write_file, workdir):
        write_file("docker-compose.yml", "services:\n  db:\n    image: postgres\n")
        (workdir / ".env").write_bytes(b"\xff\xfe=1\n")
        with pytest.raises(ComposefileParseError, match="failed to read env file"):
            await ComposefileParser().parse_file("docker-compose.yml")
