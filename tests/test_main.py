import json

from ormagent import main as agent_main
from ormagent.core.errors import RevertError


def _env(monkeypatch, config):
    monkeypatch.setenv("OBJECT_TYPE", config.object_type)
    monkeypatch.setenv("YAML_MANIFEST_URL", config.manifest_url)
    monkeypatch.setenv("APPLICATION_NAME", config.app_name)
    monkeypatch.setenv("LOCAL_PREFIX", config.local_prefix)


def test_no_update_runs_installed_application(config, local_prefix, http, monkeypatch):
    _env(monkeypatch, config)
    http.serve(config.manifest_url, "object_type: gateway\ndevices:\n  - pattern: '.*'\n    version: 1.0.0\n")

    assert agent_main.main([]) == 0
    assert (local_prefix / "app" / "ran").exists()


def test_no_run_flag_skips_installed_application(config, local_prefix, http, monkeypatch):
    _env(monkeypatch, config)
    http.serve(config.manifest_url, "object_type: gateway\ndevices: []\n")

    assert agent_main.main(["--no-run"]) == 0
    assert not (local_prefix / "app" / "ran").exists()


def test_config_file_is_used(config, local_prefix, http, tmp_path, monkeypatch):
    for key in ("OBJECT_TYPE", "YAML_MANIFEST_URL", "APPLICATION_NAME", "LOCAL_PREFIX"):
        monkeypatch.delenv(key, raising=False)
    config_file = tmp_path / "agent.json"
    config_file.write_text(json.dumps(config.as_dict()), encoding="utf-8")
    http.serve(config.manifest_url, "object_type: gateway\ndevices: []\n")

    assert agent_main.main(["--config", str(config_file)]) == 0
    assert (local_prefix / "app" / "ran").exists()


def test_missing_configuration_fails(monkeypatch):
    for key in ("OBJECT_TYPE", "YAML_MANIFEST_URL", "APPLICATION_NAME", "LOCAL_PREFIX"):
        monkeypatch.delenv(key, raising=False)

    assert agent_main.main([]) == 1


def test_revert_failure_needs_operator(config, monkeypatch):
    _env(monkeypatch, config)

    def _explode(_self, _current):
        raise RevertError("restore failed")

    monkeypatch.setattr(agent_main.Updater, "execute", _explode)

    assert agent_main.main([]) == 2
