"""
Unit tests for lockfile verification.
"""

import pytest

from conftest import fake_digest
from docklock.errors import LockfileDifferenceError, RegistryError
from docklock.generate.lockfile import DockerfileEntry, KubernetesfileEntry, Lockfile
from docklock.kind import Kind
from docklock.verify.verifier import Verifier, compare_lockfiles


def dockerfile_lockfile(*entries):
    return Lockfile(dockerfiles={"Dockerfile": list(entries)})


def busybox(digest=None, tag="latest"):
    return DockerfileEntry(name="busybox", tag=tag, digest=digest or fake_digest("busybox", tag))


class TestCompareLockfiles:
    """Test compare_lockfiles"""

    def test_identical(self):
        compare_lockfiles(dockerfile_lockfile(busybox()), dockerfile_lockfile(busybox()))

    def test_field_difference(self):
        """Should name the field and both values"""
        with pytest.raises(LockfileDifferenceError) as exc_info:
            compare_lockfiles(dockerfile_lockfile(busybox("old")), dockerfile_lockfile(busybox("new")))

        error = exc_info.value
        assert error.kind == Kind.DOCKERFILE
        assert error.path == "Dockerfile"
        assert error.field == "digest"
        assert "existing image with field 'digest' and value 'old' differs from the new image's value 'new'" in str(error)

    def test_exclude_tags(self):
        """Should ignore tag differences when tags are excluded"""
        existing = dockerfile_lockfile(DockerfileEntry(name="busybox", tag="", digest="abc"))
        new = dockerfile_lockfile(DockerfileEntry(name="busybox", tag="latest", digest="abc"))

        compare_lockfiles(existing, new, exclude_tags=True)
        with pytest.raises(LockfileDifferenceError, match="'tag'"):
            compare_lockfiles(existing, new)

    def test_path_difference(self):
        existing = Lockfile(kubernetesfiles={"pod.yaml": [
            KubernetesfileEntry(name="redis", tag="6", digest="a", container="app"),
        ]})
        with pytest.raises(LockfileDifferenceError, match="kubernetesfiles: existing paths"):
            compare_lockfiles(existing, Lockfile())

    def test_count_difference(self):
        with pytest.raises(LockfileDifferenceError, match="has 2 images"):
            compare_lockfiles(dockerfile_lockfile(busybox(), busybox()), dockerfile_lockfile(busybox()))


class TestVerifier:
    """Test Verifier against files on disk"""

    @pytest.mark.asyncio
    async def test_up_to_date(self, write_file, fake_registry):
        write_file("Dockerfile", "FROM busybox:latest@sha256:stale\n")

        new_lockfile = await Verifier(fake_registry).verify(dockerfile_lockfile(busybox()))

        assert new_lockfile.dockerfiles["Dockerfile"][0].digest == fake_digest("busybox", "latest")

    @pytest.mark.asyncio
    async def test_digest_changed(self, write_file, fake_registry):
        """Should re-query the registry even for pinned files"""
        write_file("Dockerfile", "FROM busybox:latest@sha256:old\n")

        with pytest.raises(LockfileDifferenceError, match="'digest'"):
            await Verifier(fake_registry).verify(dockerfile_lockfile(busybox("old")))
        assert fake_registry.calls[("busybox", "latest")] == 1

    @pytest.mark.asyncio
    async def test_only_listed_files(self, write_file, fake_registry):
        """Should not pick up files the lockfile does not name"""
        write_file("Dockerfile", "FROM busybox\n")
        write_file("docker-compose.yml", "services:\n  db:\n    image: postgres\n")

        new_lockfile = await Verifier(fake_registry).verify(dockerfile_lockfile(busybox()))

        assert new_lockfile.composefiles == {}

    def test_flags_for(self, workdir, write_file, fake_registry):
        write_file("Dockerfile", "FROM busybox\n")
        flags = Verifier(fake_registry, exclude_tags=True).flags_for(dockerfile_lockfile(busybox()))

        assert flags.dockerfile.manual_paths == ["Dockerfile"]
        assert flags.composefile.exclude_all
        assert flags.kubernetesfile.exclude_all
        assert flags.update_existing_digests

    @pytest.mark.asyncio
    async def test_registry_failure(self, write_file, fake_registry):
        write_file("Dockerfile", "FROM busybox\n")
        fake_registry.missing.add(("busybox", "latest"))

        with pytest.raises(RegistryError):
            await Verifier(fake_registry).verify(dockerfile_lockfile(busybox()))
