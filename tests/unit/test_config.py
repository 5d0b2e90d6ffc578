"""Unit tests for the configuration loader"""

import pytest

from facesense.config.config_loader import PROJECT_ROOT, Config


def write_config(tmp_path, body):
    path = tmp_path / "config.yaml"
    path.write_text(body, encoding="utf-8")
    return str(path)


class TestConfig:
    """Test suite for Config"""

    def test_dot_notation(self, tmp_path):
        cfg = Config(write_config(tmp_path, "identity:\n  match_threshold: 0.6\n  unknown_label: stranger\n"))

        assert cfg.get('identity.match_threshold') == 0.6
        assert cfg['identity.unknown_label'] == "stranger"

    def test_missing_key_returns_default(self, tmp_path):
        cfg = Config(write_config(tmp_path, "sampling:\n  interval: 0.3\n"))

        assert cfg.get('sampling.missing', 5) == 5
        assert cfg.get('nothing.here') is None
        # Descending into a scalar falls back to the default
        assert cfg.get('sampling.interval.deeper', 'x') == 'x'

    def test_empty_file(self, tmp_path):
        cfg = Config(write_config(tmp_path, ""))
        assert cfg.get('sampling.interval', 0.3) == 0.3

    def test_explicit_missing_file_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Config(str(tmp_path / "absent.yaml"))

    def test_env_variable_selects_file(self, tmp_path, monkeypatch):
        path = write_config(tmp_path, "sampling:\n  interval: 1.5\n")
        monkeypatch.setenv('FACESENSE_CONFIG', path)

        assert Config().get('sampling.interval') == 1.5

    def test_env_variable_missing_file_raises(self, tmp_path, monkeypatch):
        monkeypatch.setenv('FACESENSE_CONFIG', str(tmp_path / "absent.yaml"))

        with pytest.raises(FileNotFoundError):
            Config()

    def test_default_file_is_loaded(self, monkeypatch):
        monkeypatch.delenv('FACESENSE_CONFIG', raising=False)
        monkeypatch.setenv('FACESENSE_ENV', 'no-such-env')

        cfg = Config()

        assert cfg.config_path == PROJECT_ROOT / 'config' / 'config.yaml'
        assert cfg.get('identity.match_threshold') == 0.8

    def test_shipped_config_is_valid(self):
        Config(str(PROJECT_ROOT / 'config' / 'config.yaml')).validate()

    @pytest.mark.parametrize("body", [
        "sampling:\n  interval: 0\n",
        "identity:\n  match_threshold: -1\n",
        "emotion:\n  face_history_size: 0\n",
        "emotion:\n  text_history_size: 0\n",
        "enrollment:\n  crop_padding: -0.1\n",
        "enrollment:\n  max_face_attempts: 0\n",
        "persistence:\n  backend: postgres\n",
        "persistence:\n  backend: redis\n",
    ])
    def test_validate_rejects(self, tmp_path, body):
        cfg = Config(write_config(tmp_path, body))

        with pytest.raises(ValueError):
            cfg.validate()

    def test_validate_accepts_redis_with_url(self, tmp_path):
        cfg = Config(write_config(tmp_path, "persistence:\n  backend: redis\nredis:\n  url: redis://localhost:6379\n"))
        cfg.validate()
