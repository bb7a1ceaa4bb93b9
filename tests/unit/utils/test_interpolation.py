"""
Unit tests for variable interpolation.
"""

import logging

import pytest

from docklock.utils.interpolation import expand, interpolate_env


def lookup_from(values):
    return values.get


class TestExpand:
    """Test shell-style expansion"""

    def test_braced_and_bare(self):
        """Should expand ${VAR} and $VAR"""
        lookup = lookup_from({"IMAGE": "busybox", "TAG": "1.31"})
        assert expand("${IMAGE}:$TAG", lookup) == "busybox:1.31"

    def test_missing_is_empty(self):
        """Should expand unset variables to an empty string"""
        assert expand("a${NOPE}b", lookup_from({})) == "ab"

    def test_default_forms(self):
        """Should distinguish :- (unset or empty) from - (unset only)"""
        lookup = lookup_from({"EMPTY": ""})
        assert expand("${EMPTY:-x}", lookup) == "x"
        assert expand("${EMPTY-x}", lookup) == ""
        assert expand("${UNSET-x}", lookup) == "x"

    def test_alternate_forms(self):
        """Should use the alternate value only when set"""
        lookup = lookup_from({"SET": "1"})
        assert expand("${SET:+yes}", lookup) == "yes"
        assert expand("${UNSET:+yes}", lookup) == ""

    def test_nested_default(self):
        """Should expand variables inside the default word"""
        lookup = lookup_from({"FALLBACK": "alpine"})
        assert expand("${IMAGE:-$FALLBACK}", lookup) == "alpine"

    def test_required_raises(self):
        """Should raise for ${VAR:?msg} when unset"""
        with pytest.raises(ValueError, match="need image"):
            expand("${IMAGE:?need image}", lookup_from({}))

    def test_dollar_escape(self):
        """Should turn $$ into $ only when escapes are allowed"""
        assert expand("$$HOME", lookup_from({"HOME": "x"})) == "$HOME"
        assert expand("$$", lookup_from({}), allow_dollar_escape=False) == "$$"

    def test_on_missing_called(self):
        """Should report unset variables without defaults"""
        missing = []
        expand("${A}${B:-b}", lookup_from({}), on_missing=missing.append)
        assert missing == ["A"]


class TestInterpolateEnv:
    """Test Compose-style interpolation"""

    def test_uses_given_environ(self):
        assert interpolate_env("${IMAGE}", {"IMAGE": "redis"}) == "redis"

    def test_warns_on_missing(self, caplog):
        """Should log a warning for unset variables"""
        with caplog.at_level(logging.WARNING):
            assert interpolate_env("${NOT_SET_ANYWHERE}", {}) == ""
        assert "NOT_SET_ANYWHERE" in caplog.text
