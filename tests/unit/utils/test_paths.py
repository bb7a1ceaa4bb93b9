"""
Unit tests for path helpers.
"""

import os

import pytest

from docklock.utils.paths import (
    is_within,
    normalize_path,
    suffixed_path,
    to_native,
    validate_path_safety,
)


class TestIsWithin:
    """Test working directory containment"""

    def test_relative_path_inside(self, workdir):
        """Should accept paths below the working directory"""
        assert is_within("a/b/Dockerfile")
        assert is_within(".")

    def test_traversal_rejected(self, workdir):
        """Should reject paths that escape with .."""
        assert not is_within("../outside")
        assert not is_within("a/../../outside")

    def test_sibling_prefix_rejected(self, tmp_path):
        """Should not treat /root/app-other as inside /root/app"""
        root = tmp_path / "app"
        other = tmp_path / "app-other"
        root.mkdir()
        other.mkdir()
        assert not is_within(other, root)

    def test_validate_raises(self, workdir):
        """Should raise ValueError naming the path"""
        with pytest.raises(ValueError, match="outside the current working directory"):
            validate_path_safety("../x")


class TestNormalizePath:
    """Test lockfile path normalization"""

    def test_strips_dot_prefix(self):
        """Should drop leading ./ and collapse separators"""
        assert normalize_path("./web//Dockerfile") == "web/Dockerfile"

    def test_absolute_made_relative(self, workdir):
        """Should make absolute paths relative to the working directory"""
        assert normalize_path(os.path.join(str(workdir), "web", "Dockerfile")) == "web/Dockerfile"

    def test_to_native_round_trip(self):
        """Should convert forward slashes to the platform separator"""
        assert to_native("web/Dockerfile") == os.path.join("web", "Dockerfile")


class TestSuffixedPath:
    """Test rewrite output naming"""

    def test_dockerfile(self):
        assert suffixed_path("Dockerfile", "new") == "Dockerfile-new"

    def test_compose_yml(self):
        assert suffixed_path("docker-compose.yml", "new") == "docker-compose-new.yml"

    def test_yaml_in_subdir(self):
        assert suffixed_path(os.path.join("k8s", "pod.yaml"), "new") == os.path.join("k8s", "pod-new.yaml")

    def test_empty_suffix(self):
        """Should return the path unchanged without a suffix"""
        assert suffixed_path("Dockerfile", "") == "Dockerfile"
