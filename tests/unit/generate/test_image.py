"""
Unit tests for image line parsing.
"""

import pytest

from docklock.generate.image import (
    ComposefileImage,
    DockerfileImage,
    Image,
    ImageReference,
    KubernetesfileImage,
    format_image_line,
    parse_image_line,
)
from docklock.kind import Kind


class TestParseImageLine:
    """Test splitting image lines into name, tag and digest"""

    @pytest.mark.parametrize("line,expected", [
        ("ubuntu", Image("ubuntu", "latest", "")),
        ("ubuntu:18.04", Image("ubuntu", "18.04", "")),
        ("ubuntu:18.04@sha256:9b17", Image("ubuntu", "18.04", "9b17")),
        ("ubuntu@sha256:9b17", Image("ubuntu", "", "9b17")),
        ("localhost:5000/app", Image("localhost:5000/app", "latest", "")),
        ("localhost:5000/app:v1", Image("localhost:5000/app", "v1", "")),
        ("gcr.io/org/app:1.0@sha256:abc", Image("gcr.io/org/app", "1.0", "abc")),
    ])
    def test_parse(self, line, expected):
        assert parse_image_line(line) == expected

    def test_format_round_trip(self):
        """Should render the same line that was parsed"""
        line = "ubuntu:18.04@sha256:9b17"
        assert parse_image_line(line).image_line == line

    def test_format_exclude_tag(self):
        """Should drop the tag when asked"""
        assert format_image_line("ubuntu", "18.04", "9b17", exclude_tag=True) == "ubuntu@sha256:9b17"
        assert format_image_line("ubuntu", "18.04") == "ubuntu:18.04"


class TestImageReference:
    """Test per-kind metadata and ordering"""

    def test_kinds(self):
        assert DockerfileImage.kind == Kind.DOCKERFILE
        assert ComposefileImage.kind == Kind.COMPOSEFILE
        assert KubernetesfileImage.kind == Kind.KUBERNETESFILE

    def test_metadata_is_a_copy(self):
        """Should not let callers mutate the reference through metadata"""
        reference = KubernetesfileImage(
            image=Image("nginx", "1.19"), path="pod.yaml",
            container_name="web", document_position=1, image_position=0,
        )
        metadata = reference.metadata()
        metadata["containerName"] = "changed"
        assert reference.metadata()["containerName"] == "web"
        assert metadata["docPosition"] == 1

    def test_compose_sort_key(self):
        """Should order by service, then Dockerfile, then position"""
        first = ComposefileImage(image=Image("a"), path="c.yml", service_name="api", position=1)
        second = ComposefileImage(image=Image("b"), path="c.yml", service_name="web", position=0)
        assert sorted([second, first], key=lambda r: r.sort_key()) == [first, second]

    def test_base_class_is_abstract(self):
        """Should only build references of a concrete kind"""
        with pytest.raises(TypeError):
            ImageReference(image=Image("busybox"), path="Dockerfile")
