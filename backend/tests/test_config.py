"""
Configuration Tests

Tests:
- Built-in defaults with an empty config directory
- YAML / JSON loading and dot-notation access
- Environment override for the Mobile App Server URL
- Runtime set and reload
"""

import json

from central_unit.config import ConfigManager, DEFAULTS


class TestConfigManager:
    """Tests for ConfigManager"""

    def test_defaults_without_files(self, tmp_path):
        """Test empty config directory is valid"""
        cfg = ConfigManager(str(tmp_path))

        assert cfg.get('decision.timeoutSeconds') == 60
        assert cfg.get('nodes.heartbeatTimeoutSeconds') == 60
        assert cfg.get('notifications.suppressionTtlSeconds') == 15
        assert cfg.get('nodes.maxClockSkewSeconds') == 30
        assert cfg.get('missing.key', 'fallback') == 'fallback'

    def test_missing_directory_uses_defaults(self, tmp_path):
        cfg = ConfigManager(str(tmp_path / "nope"))
        assert cfg.get_decision_config() == DEFAULTS['decision']

    def test_main_yaml_overrides_defaults(self, tmp_path):
        (tmp_path / "central_unit.yaml").write_text(
            "decision:\n  timeoutSeconds: 30\nnodes:\n  sweepIntervalSeconds: 5\n"
        )

        cfg = ConfigManager(str(tmp_path))

        assert cfg.get('decision.timeoutSeconds') == 30
        assert cfg.get('decision.displayDurationSec') == 300
        assert cfg.get_nodes_config()['sweepIntervalSeconds'] == 5
        assert cfg.get('central_unit.decision.timeoutSeconds') == 30

    def test_json_section(self, tmp_path):
        (tmp_path / "extra.json").write_text(json.dumps({"feature": {"enabled": True}}))

        cfg = ConfigManager(str(tmp_path))

        assert cfg.get('extra.feature.enabled') is True

    def test_invalid_yaml_is_skipped(self, tmp_path):
        (tmp_path / "central_unit.yaml").write_text("decision: [unclosed\n")

        cfg = ConfigManager(str(tmp_path))

        assert cfg.get('decision.timeoutSeconds') == 60

    def test_mobile_url_from_env(self, tmp_path, monkeypatch):
        (tmp_path / "central_unit.yaml").write_text("mobileApp:\n  serverUrl: http://from-file\n")
        cfg = ConfigManager(str(tmp_path))

        monkeypatch.delenv("MOBILE_APP_SERVER_URL", raising=False)
        assert cfg.get_mobile_app_config()['serverUrl'] == "http://from-file"

        monkeypatch.setenv("MOBILE_APP_SERVER_URL", "http://from-env")
        assert cfg.get_mobile_app_config()['serverUrl'] == "http://from-env"
        assert cfg.get_mobile_app_config()['timeoutSeconds'] == 10

    def test_set_and_reload(self, tmp_path):
        cfg = ConfigManager(str(tmp_path))

        cfg.set('decision.timeoutSeconds', 5)
        cfg.set('new.section.value', 1)
        assert cfg.get('decision.timeoutSeconds') == 5
        assert cfg.get('new.section.value') == 1

        cfg.reload()
        assert cfg.get('decision.timeoutSeconds') == 60
        assert cfg.get('new.section.value') is None

    def test_shipped_config_loads(self):
        """Test the default backend/config directory parses"""
        cfg = ConfigManager()
        assert cfg.get('decision.displayDurationSec') == 300
        assert cfg.get('nodes.maxClockSkewSeconds') == 30
        assert cfg.get('decision.maxSpeedLimit') is None
