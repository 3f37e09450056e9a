"""Tests for morphir-make.yaml loading."""

import pytest

from morphir_make.config import MakeConfig, load_make_config
from morphir_make.constants import DEFAULT_MAX_CONCURRENT, ENGINE_ENV_VAR
from morphir_make.errors import ConfigError


@pytest.fixture(autouse=True)
def no_engine_env(monkeypatch):
    monkeypatch.delenv(ENGINE_ENV_VAR, raising=False)


def write_config(root, text):
    (root / "morphir-make.yaml").write_text(text)


class TestLoadConfig:

    def test_defaults_without_file(self, tmp_path):
        config = load_make_config(tmp_path)
        assert config == MakeConfig()
        assert config.max_concurrent == DEFAULT_MAX_CONCURRENT
        assert not config.ignore_spec()

    def test_full_file(self, tmp_path):
        write_config(tmp_path, """
engine:
  command: ["node", "engine.js", "--quiet"]
max_concurrent: 4
ignore:
  - "*.md"
redistributable_dir: redistributable
""")
        config = load_make_config(tmp_path)

        assert config.engine_command == ["node", "engine.js", "--quiet"]
        assert config.max_concurrent == 4
        assert config.ignore_spec().is_ignored("README.md")
        assert config.redistributable_dir == tmp_path / "redistributable"

    def test_string_command_is_split(self, tmp_path):
        write_config(tmp_path, "engine:\n  command: node 'my engine.js'\n")
        assert load_make_config(tmp_path).engine_command == ["node", "my engine.js"]

    def test_absolute_redistributable_dir_kept(self, tmp_path):
        target = tmp_path / "elsewhere"
        write_config(tmp_path, f"redistributable_dir: {target}\n")
        assert load_make_config(tmp_path).redistributable_dir == target

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        write_config(tmp_path, "engine:\n  command: [file-engine]\n")
        monkeypatch.setenv(ENGINE_ENV_VAR, "env-engine --fast")
        assert load_make_config(tmp_path).engine_command == ["env-engine", "--fast"]

    @pytest.mark.parametrize("text", ["engine: [unclosed", "- just\n- a list\n"])
    def test_unusable_file_falls_back_to_defaults(self, tmp_path, text):
        write_config(tmp_path, text)
        assert load_make_config(tmp_path) == MakeConfig()

    @pytest.mark.parametrize("value", ["0", "-3", "many"])
    def test_invalid_max_concurrent(self, tmp_path, value):
        write_config(tmp_path, f"max_concurrent: {value}\n")
        with pytest.raises(ConfigError, match="max_concurrent"):
            load_make_config(tmp_path)

    def test_single_ignore_pattern_string(self, tmp_path):
        write_config(tmp_path, "ignore: '*.bak'\n")
        config = load_make_config(tmp_path)

        assert config.ignore == ["*.bak"]
        assert config.ignore_spec().is_ignored("Morphir/App.elm.bak")
        assert not config.ignore_spec().is_ignored("Morphir/App.elm")

    @pytest.mark.parametrize("text", ["ignore: 42\n", "ignore:\n  - '*.md'\n  - 7\n", "ignore: {a: b}\n"])
    def test_invalid_ignore(self, tmp_path, text):
        write_config(tmp_path, text)
        with pytest.raises(ConfigError, match="ignore"):
            load_make_config(tmp_path)

    @pytest.mark.parametrize("text", ["engine:\n  command: 42\n", "engine:\n  command: {run: x}\n"])
    def test_invalid_engine_command(self, tmp_path, text):
        write_config(tmp_path, text)
        with pytest.raises(ConfigError, match="engine.command"):
            load_make_config(tmp_path)


class TestRequireEngine:

    def test_missing_engine_raises(self):
        with pytest.raises(ConfigError, match="No compilation engine configured"):
            MakeConfig().require_engine_command()

    def test_configured_engine(self):
        assert MakeConfig(engine_command=["x"]).require_engine_command() == ["x"]
