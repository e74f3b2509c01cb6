import pytest

from machinecfg.errors import ConfigError, InvalidNameError
from machinecfg.kinds import InstallAction, PackageKind, Platform
from machinecfg.packages import PackageRepository, PackageSet, display_name

JQ_SET = """
    name: jq
    description: JSON processor
    env-vars:
      jq_port: 8080
    actions:
      packages:
        - name: jq
        - name: gnu-sed
          platform: macos
        - name: rake
          kind:
            language: ruby
"""

RUST_SET = """
    name: rust
    optional: true
    actions:
      scripts:
        install: curl -sSf https://sh.rustup.rs | sh
        update: rustup update
    env-file: env.sh
    link-files:
      cargo-config.toml: "{{home}}/.cargo/config.toml"
"""


@pytest.fixture
def repo(paths, write_set, logger):
    write_set("10-dev-tools", "jq.yml", JQ_SET)
    write_set("10-dev-tools", "rust/package-set.yml", RUST_SET)
    write_set("20-shell", "zsh.yaml", "name: zsh\n")
    return PackageRepository.open(paths.repository_path, logger)


class TestRepository:
    def test_discovery(self, repo):
        assert [g.name for g in repo.groups] == ["10-dev-tools", "20-shell"]
        assert [ps.name for ps in repo.group("10-dev-tools").package_sets] == ["jq", "rust"]
        assert repo.group("20-shell").package_set("zsh") is not None
        assert [(g.name, ps.name) for g, ps in repo.package_sets()] == [
            ("10-dev-tools", "jq"),
            ("10-dev-tools", "rust"),
            ("20-shell", "zsh"),
        ]

    def test_lookups(self, repo):
        assert repo.has_group("20-shell")
        assert not repo.has_group("30-missing")
        group = repo.group("10-dev-tools")
        assert group.package_set("rust") is not None
        assert group.package_set("nope") is None

    def test_hidden_and_unrelated_entries_ignored(self, paths, write_set, logger):
        write_set("10-tools", "jq.yml", "name: jq\n")
        write_set("10-tools", "README.md", "# notes\n")
        (paths.repository_path / "10-tools" / "empty-dir").mkdir()
        for hidden in (".git", ".config", ".local"):
            (paths.repository_path / hidden / "x").mkdir(parents=True)
        # would otherwise parse as groups with package sets
        write_set(".github", "ci.yml", "name: ci\n")
        write_set(".vscode", "settings/package-set.yml", "name: settings\n")
        (paths.repository_path / "top-level.yml").write_text("name: stray\n")

        repo = PackageRepository.open(paths.repository_path, logger)
        assert [g.name for g in repo.groups] == ["10-tools"]
        assert [ps.name for ps in repo.groups[0].package_sets] == ["jq"]

    def test_empty_repository(self, paths, logger):
        repo = PackageRepository.open(paths.repository_path, logger)
        assert repo.is_empty()

    def test_missing_repository(self, tmp_path, logger):
        with pytest.raises(ConfigError, match="not found"):
            PackageRepository.open(tmp_path / "nowhere", logger)

    def test_invalid_group_name(self, write_set, paths, logger):
        write_set("bad group", "jq.yml", "name: jq\n")
        with pytest.raises(InvalidNameError):
            PackageRepository.open(paths.repository_path, logger)

    def test_display_name(self, repo):
        assert repo.group("10-dev-tools").display_name == "dev tools"
        assert display_name("3_fonts") == "fonts"
        assert display_name("shell") == "shell"


class TestPackageSet:
    def test_packages_shape(self, repo):
        jq = repo.group("10-dev-tools").package_set("jq")
        assert jq.description == "JSON processor"
        assert jq.scripts() is None
        packages = jq.packages()
        assert [p.name for p in packages] == ["jq", "gnu-sed", "rake"]
        assert packages[0].kind == PackageKind.default()
        assert packages[1].platform is Platform.MACOS
        assert packages[2].kind == PackageKind.for_language("ruby")
        assert jq.env_vars == {"jq_port": "8080"}

    def test_scripts_shape(self, repo, paths):
        rust = repo.group("10-dev-tools").package_set("rust")
        assert rust.optional
        assert rust.packages() is None
        assert rust.scripts() == {
            InstallAction.INSTALL: "curl -sSf https://sh.rustup.rs | sh",
            InstallAction.UPDATE: "rustup update",
        }
        assert rust.directory == paths.repository_path / "10-dev-tools" / "rust"
        assert rust.env_file_path() == rust.directory / "env.sh"
        assert rust.link_files == {"cargo-config.toml": "{{home}}/.cargo/config.toml"}

    def test_no_actions(self, repo):
        zsh = repo.group("20-shell").package_set("zsh")
        assert not zsh.has_actions()
        assert zsh.packages() is None and zsh.scripts() is None

    def test_unknown_field_rejected(self, write_set, logger):
        path = write_set("g", "s.yml", "name: s\nrun-befor: echo typo\n")
        with pytest.raises(ConfigError) as ei:
            PackageSet.read(path, logger)
        assert ei.value.path == path
        assert "run-befor" in str(ei.value)

    def test_unknown_package_field_rejected(self, write_set, logger):
        path = write_set("g", "s.yml", "name: s\nactions:\n  packages:\n    - name: jq\n      version: 1\n")
        with pytest.raises(ConfigError, match="version"):
            PackageSet.read(path, logger)

    def test_both_action_shapes_rejected(self, write_set, logger):
        path = write_set(
            "g",
            "s.yml",
            """
            name: s
            actions:
              packages:
                - name: jq
              scripts:
                install: echo hi
            """,
        )
        with pytest.raises(ConfigError, match="exactly one"):
            PackageSet.read(path, logger)

    def test_unknown_script_action_rejected(self, write_set, logger):
        path = write_set("g", "s.yml", "name: s\nactions:\n  scripts:\n    upgrade: echo\n")
        with pytest.raises(ConfigError, match="unknown action") as ei:
            PackageSet.read(path, logger)
        assert ei.value.path == path

    def test_optional_must_be_bool(self, write_set, logger):
        path = write_set("g", "s.yml", "name: s\noptional: maybe\n")
        with pytest.raises(ConfigError, match="boolean"):
            PackageSet.read(path, logger)

    def test_invalid_yaml_reports_position(self, write_set, logger):
        path = write_set("g", "s.yml", "name: s\nactions: [unclosed\n")
        with pytest.raises(ConfigError, match="line"):
            PackageSet.read(path, logger)

    def test_to_dict(self, repo):
        rust = repo.group("10-dev-tools").package_set("rust")
        out = rust.to_dict()
        assert out["actions"] == {"scripts": {"install": "curl -sSf https://sh.rustup.rs | sh", "update": "rustup update"}}
        assert out["optional"] is True
        jq = repo.group("10-dev-tools").package_set("jq").to_dict()
        assert jq["actions"]["packages"][2] == {"name": "rake", "kind": {"language": "ruby"}}
