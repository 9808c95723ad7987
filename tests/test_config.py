"""Tests for configuration loading and plan resolution."""

from pathlib import Path

import pytest
import yaml

from denoprov.config import (
    CONFIG_ENV_VAR,
    ProvisionerConfig,
    default_config_path,
    load_config,
    resolve_plan,
)
from denoprov.errors import ConfigurationError
from denoprov.schemas import (
    DEFAULT_REMOTE_FOLDER,
    DEFAULT_REMOTE_RUNTIME_PATH,
    LocalBinaryUpload,
    NetworkInstall,
    SkipInstall,
)


@pytest.fixture
def write_config(tmp_path):
    def _write(data, name="denoprov.yaml"):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data) if not isinstance(data, str) else data)
        return path
    return _write


@pytest.fixture
def deno_binary(tmp_path):
    path = tmp_path / "deno"
    path.write_bytes(b"\x7fELF fake deno")
    path.chmod(0o755)
    return path


def config_for(scripts, **kwargs) -> ProvisionerConfig:
    return ProvisionerConfig(scripts=[str(s) for s in scripts], **kwargs)


class TestFromDict:
    """Tests for ProvisionerConfig.from_dict."""

    def test_known_keys(self):
        config = ProvisionerConfig.from_dict({
            "scripts": ["/opt/a.ts"],
            "remote_folder": "/tmp/w",
            "skip_install": True,
            "target_runtime_version": "v1.40.0",
            "target": {"type": "ssh", "host": "example.org"},
        })
        assert config.scripts == ["/opt/a.ts"]
        assert config.remote_folder == "/tmp/w"
        assert config.skip_install is True
        assert config.target_runtime_version == "v1.40.0"
        assert config.target["host"] == "example.org"

    def test_unknown_and_mistyped_keys_reported_together(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ProvisionerConfig.from_dict({
                "scripts": ["/opt/a.ts"],
                "remote_dir": "/tmp/w",
                "skip_install": "yes",
            })
        errors = exc_info.value.errors
        assert any("unknown configuration key 'remote_dir'" in e for e in errors)
        assert any("'skip_install' must be true or false" in e for e in errors)

    def test_scripts_must_be_a_list(self):
        with pytest.raises(ConfigurationError, match="'scripts' must be a list"):
            ProvisionerConfig.from_dict({"scripts": "a.ts"})

    def test_relative_paths_resolved_against_config_dir(self, tmp_path):
        config = ProvisionerConfig.from_dict(
            {"scripts": ["scripts/a.ts", "/abs/b.ts"]},
            config_path=tmp_path / "denoprov.yaml",
        )
        assert config.scripts == [str(tmp_path / "scripts" / "a.ts"), "/abs/b.ts"]

    def test_numeric_version_becomes_string(self):
        config = ProvisionerConfig.from_dict({"target_runtime_version": 1.4})
        assert config.target_runtime_version == "1.4"


class TestLoadConfig:
    """Tests for load_config."""

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="denoprov config not found"):
            load_config(tmp_path / "nope.yaml")

    def test_empty_file(self, write_config):
        with pytest.raises(ConfigurationError, match="empty"):
            load_config(write_config(""))

    def test_not_a_mapping(self, write_config):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_config(write_config("- a.ts\n- b.ts\n"))

    def test_invalid_yaml(self, write_config):
        with pytest.raises(ConfigurationError, match="invalid YAML"):
            load_config(write_config("scripts: [a.ts\n"))

    def test_loads_relative_scripts(self, write_config, tmp_path):
        path = write_config({"scripts": ["a.ts"]})
        config = load_config(path)
        assert config.scripts == [str(tmp_path.resolve() / "a.ts")]
        assert config.config_path == path.resolve()

    def test_env_var_location(self, write_config, monkeypatch):
        path = write_config({"scripts": ["a.ts"]}, name="elsewhere.yaml")
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
        assert default_config_path() == path
        assert load_config().config_path == path.resolve()

    def test_default_is_cwd(self, tmp_path, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        monkeypatch.chdir(tmp_path)
        assert default_config_path() == tmp_path / "denoprov.yaml"


class TestResolvePlan:
    """Tests for resolve_plan."""

    def test_defaults(self, scripts):
        plan = resolve_plan(config_for(scripts))
        assert plan.remote_work_dir == DEFAULT_REMOTE_FOLDER
        assert plan.remote_runtime_path == DEFAULT_REMOTE_RUNTIME_PATH
        assert plan.scripts == tuple(scripts)
        assert plan.install_strategy == NetworkInstall(version=None)
        assert plan.bundle_enabled is False
        assert plan.skip_execution is False

    def test_script_order_preserved(self, scripts):
        plan = resolve_plan(config_for(list(reversed(scripts))))
        assert [p.name for p in plan.scripts] == ["b.ts", "a.ts"]

    def test_network_version(self, scripts):
        plan = resolve_plan(config_for(scripts, target_runtime_version="v1.40.0"))
        assert plan.install_strategy == NetworkInstall(version="v1.40.0")

    def test_skip_install(self, scripts):
        plan = resolve_plan(config_for(scripts, skip_install=True))
        assert isinstance(plan.install_strategy, SkipInstall)

    def test_skip_provision(self, scripts):
        plan = resolve_plan(config_for(scripts, skip_provision=True))
        assert plan.skip_execution is True

    def test_local_binary(self, scripts, deno_binary):
        plan = resolve_plan(config_for(scripts, local_runtime_bin=str(deno_binary)))
        assert plan.install_strategy == LocalBinaryUpload(path=deno_binary)

    def test_local_binary_missing(self, scripts, tmp_path):
        with pytest.raises(ConfigurationError, match="bad path to local deno binary"):
            resolve_plan(config_for(scripts, local_runtime_bin=str(tmp_path / "missing")))

    def test_local_binary_with_skip_install(self, scripts, deno_binary):
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_plan(config_for(scripts, local_runtime_bin=str(deno_binary), skip_install=True))
        assert exc_info.value.errors == [
            "if local_runtime_bin is set, skip_install cannot be true"
        ]

    def test_no_scripts(self):
        with pytest.raises(ConfigurationError, match="at least one script must be specified"):
            resolve_plan(ProvisionerConfig())

    def test_missing_script(self, scripts, tmp_path):
        missing = tmp_path / "missing.ts"
        with pytest.raises(ConfigurationError, match="bad script"):
            resolve_plan(config_for([*scripts, missing]))

    def test_duplicate_base_names(self, scripts, tmp_path):
        other = tmp_path / "other"
        other.mkdir()
        (other / "a.ts").write_text("")
        with pytest.raises(ConfigurationError, match="share the file name 'a.ts'"):
            resolve_plan(config_for([scripts[0], other / "a.ts"]))

    def test_remote_folder_must_be_absolute(self, scripts):
        with pytest.raises(ConfigurationError, match="remote_folder must be an absolute path"):
            resolve_plan(config_for(scripts, remote_folder="work"))

    def test_runtime_path_must_be_absolute(self, scripts):
        with pytest.raises(ConfigurationError, match="remote runtime path must be an absolute path"):
            resolve_plan(config_for(scripts, remote_runtime_path="bin/deno"))

    def test_network_runtime_path_must_be_in_bin(self, scripts):
        with pytest.raises(ConfigurationError, match="inside a 'bin' directory"):
            resolve_plan(config_for(scripts, remote_runtime_path="/opt/deno"))

    def test_skip_install_runtime_path_anywhere(self, scripts):
        plan = resolve_plan(config_for(scripts, skip_install=True, remote_runtime_path="/opt/deno"))
        assert plan.remote_runtime_path == "/opt/deno"

    def test_bundle_requires_local_deno(self, scripts, tmp_path):
        with pytest.raises(ConfigurationError, match="local deno"):
            resolve_plan(config_for(scripts, bundle=True, local_bundler=str(tmp_path / "no-deno")))

    def test_bundle_with_local_deno(self, scripts, deno_binary):
        plan = resolve_plan(config_for(scripts, bundle=True, local_bundler=str(deno_binary)))
        assert plan.bundle_enabled is True
        assert plan.local_bundler == str(deno_binary)

    def test_all_errors_collected(self, tmp_path):
        config = ProvisionerConfig(
            scripts=[str(tmp_path / "missing.ts")],
            remote_folder="relative",
            remote_runtime_path="deno",
        )
        with pytest.raises(ConfigurationError) as exc_info:
            resolve_plan(config)
        assert len(exc_info.value.errors) == 3

    def test_plan_is_immutable(self, scripts):
        plan = resolve_plan(config_for(scripts))
        with pytest.raises(AttributeError):
            plan.remote_work_dir = "/elsewhere"

    def test_to_dict(self, scripts):
        plan = resolve_plan(config_for(scripts, target_runtime_version="v1.40.0"))
        data = plan.to_dict()
        assert data["install"] == {"strategy": "network", "version": "v1.40.0"}
        assert data["scripts"] == [str(s) for s in scripts]
