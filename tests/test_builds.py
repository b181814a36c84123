"""Tests for patch_compliance.builds module."""

import pytest

from patch_compliance.builds import (
    BUILD_REGISTRY,
    NO_OS_VERSION,
    OS_NAMES,
    OS_VERSION_LABELS,
    os_version_label,
    resolve_os_name,
)


class TestBuildRegistry:
    """Tests for the build registry table."""

    def test_registry_newest_first(self):
        """Test that registry entries are ordered newest build first."""
        builds = [info.major_build for info in BUILD_REGISTRY]
        assert builds == sorted(builds, reverse=True)

    def test_registry_is_read_only(self):
        """Test that the name mapping cannot be modified."""
        with pytest.raises(TypeError):
            OS_NAMES[1] = "Windows 1.0"


class TestResolveOsName:
    """Tests for resolve_os_name function."""

    def test_known_builds(self):
        """Test resolving registered build lines."""
        assert resolve_os_name(19045) == "Windows 10 Version 22H2"
        assert resolve_os_name(22631) == "Windows 11 Version 23H2"
        assert resolve_os_name(26100) == "Windows 11 Version 24H2"

    def test_unknown_build(self):
        """Test that unregistered builds resolve to Unknown."""
        assert resolve_os_name(12345) == "Unknown"
        assert resolve_os_name(0) == "Unknown"

    def test_no_nearest_match(self):
        """Test that a build between two entries is not rounded down."""
        assert resolve_os_name(19046) == "Unknown"


class TestOsVersionLabel:
    """Tests for os_version_label function."""

    def test_mapped_build(self):
        """Test labels for mapped builds."""
        assert os_version_label(19045, "10.0.19045.5131") == "Win10-22H2"
        assert os_version_label(22631, "10.0.22631.4460") == "Win11-23H2"

    def test_zero_build(self):
        """Test that build 0 maps to No OS version."""
        assert os_version_label(0, "0.0.0.0") == NO_OS_VERSION

    def test_absent(self):
        """Test that an absent version maps to No OS version."""
        assert os_version_label(None, None) == NO_OS_VERSION
        assert os_version_label(None, "") == NO_OS_VERSION

    def test_unmapped_passes_through(self):
        """Test that unmapped builds keep the raw version string."""
        assert os_version_label(99999, "10.0.99999.1") == "10.0.99999.1"

    def test_every_registry_build_has_label(self):
        """Test that each registry build line has a report label."""
        for info in BUILD_REGISTRY:
            if info.major_build == 20348:
                continue
            assert info.major_build in OS_VERSION_LABELS
