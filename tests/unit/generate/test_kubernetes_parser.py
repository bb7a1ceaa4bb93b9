"""
Unit tests for the Kubernetes manifest parser.
"""

import pytest

from docklock.errors import KubernetesfileParseError
from docklock.generate.kubernetes_parser import KubernetesfileParser, find_containers

MANIFEST = """apiVersion: v1
kind: Pod
metadata:
  name: web
spec:
  initContainers:
    - name: init
      image: busybox
  containers:
    - name: app
      image: nginx:1.19
    - name: sidecar
      image: "envoyproxy/envoy:v1.16.0"
---
apiVersion: apps/v1
kind: Deployment
metadata:
  name: api
spec:
  template:
    spec:
      containers:
        - name: api
          image: myorg/api@sha256:abc
"""


class TestFindContainers:
    """Test container discovery"""

    def test_positions(self):
        """Should number documents and images within each document"""
        containers = find_containers(MANIFEST, "pod.yaml")

        assert [
            (c.container_name, c.image_node.value, c.document_position, c.image_position)
            for c in containers
        ] == [
            ("init", "busybox", 0, 0),
            ("app", "nginx:1.19", 0, 1),
            ("sidecar", "envoyproxy/envoy:v1.16.0", 0, 2),
            ("api", "myorg/api@sha256:abc", 1, 0),
        ]

    def test_ignores_mappings_without_image(self):
        """Should skip metadata blocks that only have a name"""
        assert find_containers("metadata:\n  name: web\n", "pod.yaml") == []

    def test_empty_documents_counted(self):
        """Should still count empty documents in positions"""
        content = "---\n---\nname: app\nimage: redis\n"
        containers = find_containers(content, "pod.yaml")
        assert [c.document_position for c in containers] == [1]

    def test_invalid_yaml(self):
        with pytest.raises(KubernetesfileParseError, match="pod.yaml"):
            find_containers("containers: [\n", "pod.yaml")


class TestKubernetesfileParser:
    """Test parsing manifests from disk"""

    @pytest.mark.asyncio
    async def test_parse_file(self, write_file):
        write_file("k8s/pod.yaml", MANIFEST)

        images = await KubernetesfileParser().parse_file("k8s/pod.yaml")

        assert len(images) == 4
        assert images[3].path == "k8s/pod.yaml"
        assert images[3].metadata() == {
            "path": "k8s/pod.yaml",
            "containerName": "api",
            "docPosition": 1,
            "imagePosition": 0,
        }
        assert (images[3].name, images[3].tag, images[3].digest) == ("myorg/api", "", "abc")

    @pytest.mark.asyncio
    async def test_undecodable_file(self, workdir):
        (workdir / "pod.yaml").write_bytes(b"\xff\xfekind: Pod\n")
        with pytest.raises(KubernetesfileParseError, match="pod.yaml"):
            await KubernetesfileParser().parse_file("pod.yaml")
