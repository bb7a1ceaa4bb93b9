"""
Unit tests for the lockfile model.
"""

import json

import pytest

from docklock.errors import LockfileError
from docklock.generate.image import ComposefileImage, DockerfileImage, Image, KubernetesfileImage
from docklock.generate.lockfile import ComposefileEntry, DockerfileEntry, Lockfile
from docklock.kind import Kind


def sample_references():
    return [
        DockerfileImage(image=Image("nginx", "1.19", "bbb"), path="web/Dockerfile", position=1),
        DockerfileImage(image=Image("node", "14", "aaa"), path="web/Dockerfile", position=0),
        ComposefileImage(image=Image("redis", "6", "ccc"), path="docker-compose.yml", service_name="cache"),
        ComposefileImage(
            image=Image("node", "14", "aaa"), path="docker-compose.yml",
            service_name="api", dockerfile_path="web/Dockerfile",
        ),
    ]


class TestFromReferences:
    """Test grouping and ordering"""

    def test_sorted_by_position_and_service(self):
        lockfile = Lockfile.from_references(sample_references())

        assert [e.name for e in lockfile.dockerfiles["web/Dockerfile"]] == ["node", "nginx"]
        assert [e.service for e in lockfile.composefiles["docker-compose.yml"]] == ["api", "cache"]
        assert lockfile.kubernetesfiles == {}
        assert lockfile.paths(Kind.DOCKERFILE) == ["web/Dockerfile"]

    def test_empty(self):
        lockfile = Lockfile.from_references([])
        assert lockfile.is_empty()
        assert lockfile.dumps() == "{}\n"


class TestSerialization:
    """Test JSON output"""

    def test_tab_indent_and_omissions(self):
        """Should indent with tabs and leave out empty fields and sections"""
        text = Lockfile.from_references(sample_references()).dumps()

        assert text.endswith("}\n")
        assert '\n\t"composefiles": {' in text
        assert "kubernetesfiles" not in text

        data = json.loads(text)
        cache = data["composefiles"]["docker-compose.yml"][1]
        assert cache == {"name": "redis", "tag": "6", "digest": "ccc", "service": "cache"}
        api = data["composefiles"]["docker-compose.yml"][0]
        assert api["dockerfile"] == "web/Dockerfile"

    def test_loads_dumps_stable(self):
        """Should produce identical text after a load/dump cycle"""
        text = Lockfile.from_references(sample_references()).dumps()
        assert Lockfile.loads(text).dumps() == text

    def test_kubernetes_entry(self):
        reference = KubernetesfileImage(
            image=Image("nginx", "1.19", "ddd"), path="pod.yaml", container_name="web",
        )
        data = Lockfile.from_references([reference]).to_dict()
        assert data == {
            "kubernetesfiles": {
                "pod.yaml": [{"name": "nginx", "tag": "1.19", "digest": "ddd", "container": "web"}]
            }
        }

    @pytest.mark.parametrize("text,message", [
        ("not json", "not valid JSON"),
        ("[]", "must be a JSON object"),
        ('{"dockerfiles": {"Dockerfile": [{"name": "a"}]}}', "invalid lockfile"),
        ('{"images": {}}', "invalid lockfile"),
    ])
    def test_loads_errors(self, text, message):
        with pytest.raises(LockfileError, match=message):
            Lockfile.loads(text)

    def test_entries_are_frozen(self):
        entry = DockerfileEntry(name="a", tag="b", digest="c")
        with pytest.raises(Exception):
            entry.name = "changed"
        assert ComposefileEntry(name="a", tag="b", digest="c", service="s").dockerfile == ""


class TestLockfileFiles:
    """Test reading and writing lockfiles"""

    @pytest.mark.asyncio
    async def test_write_then_read(self, workdir):
        lockfile = Lockfile.from_references(sample_references())
        await lockfile.write("docker-lock.json")

        assert (workdir / "docker-lock.json").read_text() == lockfile.dumps()
        assert await Lockfile.read("docker-lock.json") == lockfile

    @pytest.mark.asyncio
    async def test_read_missing(self, workdir):
        with pytest.raises(LockfileError, match="failed to read lockfile"):
            await Lockfile.read("docker-lock.json")

    @pytest.mark.asyncio
    async def test_read_undecodable(self, workdir):
        (workdir / "docker-lock.json").write_bytes(b"\xff\xfe{}")
        with pytest.raises(LockfileError, match="failed to read lockfile"):
            await Lockfile.read("docker-lock.json")
