"""
Names, platforms, package kinds and actions.

The platform rule matters most: a missing platform constraint means "the current
platform", never "every platform".
"""

import pytest

from machinecfg import kinds
from machinecfg.errors import ConfigError, InvalidNameError
from machinecfg.kinds import (
    InstallAction,
    Name,
    PackageKind,
    Platform,
    is_current_platform,
)


class TestName:
    @pytest.mark.parametrize("value", ["jq", "python@3.9", "homebrew/cask/firefox", "g++", "lib_x-1.2"])
    def test_valid(self, value):
        assert Name(value) == value

    @pytest.mark.parametrize("value", ["", "has space", "tab\tname", None, 3])
    def test_invalid(self, value):
        with pytest.raises(InvalidNameError):
            Name(value)

    def test_invalid_name_is_a_config_error(self):
        with pytest.raises(ConfigError) as ei:
            Name("bad name")
        assert isinstance(ei.value, ValueError)
        assert ei.value.value == "bad name"


class TestPlatform:
    def test_parse(self):
        assert Platform.parse("macos") is Platform.MACOS
        assert str(Platform.LINUX) == "linux"

    def test_parse_unknown(self):
        with pytest.raises(ConfigError, match="unknown platform"):
            Platform.parse("windows")

    def test_no_constraint_matches_current_only(self, current_platform):
        assert Platform.LINUX.is_match(None)
        assert not Platform.MACOS.is_match(None)

        current_platform(Platform.MACOS)
        assert Platform.MACOS.is_match(None)
        assert not Platform.LINUX.is_match(None)

    def test_is_current_platform(self, current_platform):
        assert kinds.current_platform() is Platform.LINUX
        assert is_current_platform(None)
        assert is_current_platform(Platform.LINUX)
        assert not is_current_platform(Platform.MACOS)

        current_platform(Platform.MACOS)
        assert is_current_platform(None)
        assert not is_current_platform(Platform.LINUX)


class TestPackageKind:
    def test_forms(self):
        assert PackageKind.parse(None) == PackageKind.default()
        assert PackageKind.parse("default") == PackageKind.default()
        assert PackageKind.parse("application") == PackageKind.application()
        assert PackageKind.parse({"language": "ruby"}) == PackageKind.for_language("ruby")
        assert PackageKind.parse("language:ruby") == PackageKind.for_language("ruby")

    def test_usable_as_key(self):
        index = {(Platform.LINUX, PackageKind.for_language("ruby")): "gem"}
        assert index[(Platform.LINUX, PackageKind.parse({"language": "ruby"}))] == "gem"
        assert (Platform.MACOS, PackageKind.for_language("ruby")) not in index

    def test_str_and_raw(self):
        assert str(PackageKind.for_language("ruby")) == "language:ruby"
        assert str(PackageKind.application()) == "application"
        assert PackageKind.for_language("ruby").to_raw() == {"language": "ruby"}
        assert PackageKind.default().to_raw() == "default"

    @pytest.mark.parametrize("value", ["bogus", {"language": "ruby", "x": 1}, {"lang": "ruby"}, 3, "language:"])
    def test_invalid(self, value):
        with pytest.raises(ConfigError):
            PackageKind.parse(value)

    def test_language_requires_name(self):
        with pytest.raises(ConfigError):
            PackageKind("language")
        with pytest.raises(ConfigError):
            PackageKind("default", Name("ruby"))


class TestInstallAction:
    def test_parse(self):
        assert InstallAction.parse("link-files") is InstallAction.LINK_FILES
        assert str(InstallAction.UNINSTALL) == "uninstall"

    def test_parse_unknown(self):
        with pytest.raises(ConfigError, match="unknown action"):
            InstallAction.parse("upgrade")
