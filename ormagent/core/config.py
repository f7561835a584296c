# config.py
from dataclasses import dataclass, asdict, fields
import json
import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from .errors import ConfigError

logger = logging.getLogger(__name__)

VERSION_MARKER_NAME = ".orm_version"
FAILED_LEDGER_NAME = ".orm_failed"
SWAP_JOURNAL_NAME = ".orm_swap"

ENV_KEYS = {
    "object_type": "OBJECT_TYPE",
    "manifest_url": "YAML_MANIFEST_URL",
    "app_name": "APPLICATION_NAME",
    "local_prefix": "LOCAL_PREFIX",
    "http_timeout": "ORM_HTTP_TIMEOUT",
}


@dataclass
class AgentConfig:
    object_type: str = ""
    manifest_url: str = ""
    app_name: str = ""
    local_prefix: str = ""
    http_timeout: float = 30.0
    user_agent: str = "orm-agent/1.0"

    @property
    def prefix_dir(self) -> Path:
        return Path(self.local_prefix)

    @property
    def app_dir(self) -> Path:
        return self.prefix_dir / self.app_name

    @property
    def ledger_path(self) -> Path:
        return self.prefix_dir / FAILED_LEDGER_NAME

    @property
    def journal_path(self) -> Path:
        return self.prefix_dir / SWAP_JOURNAL_NAME

    def load_file(self, path: Path) -> None:
        """Overlay values from a JSON config file onto this config."""
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise ConfigError(f"Could not load config file {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must hold a JSON object")

        known = {f.name for f in fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key %r in %s", key, path)
                continue
            setattr(self, key, value)

    def load_env(self, environ: Optional[Mapping[str, str]] = None) -> None:
        env = os.environ if environ is None else environ
        for attr, env_key in ENV_KEYS.items():
            value = env.get(env_key, "").strip()
            if value:
                setattr(self, attr, value)

    def validate(self) -> None:
        missing = [
            env_key
            for attr, env_key in ENV_KEYS.items()
            if attr != "http_timeout" and not getattr(self, attr)
        ]
        if missing:
            raise ConfigError(f"Missing configuration: {', '.join(missing)}")

        try:
            self.http_timeout = float(self.http_timeout)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid HTTP timeout: {self.http_timeout!r}") from e

        if not self.prefix_dir.is_dir():
            raise ConfigError(f"Local prefix is not a valid directory: {self.local_prefix}")

    def require_app_dir(self) -> None:
        if not self.app_dir.is_dir():
            raise ConfigError(f"Application directory is not a valid one: {self.app_dir}")

    def as_dict(self) -> dict:
        return asdict(self)


def load_config(config_file: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None) -> AgentConfig:
    """Build the agent config: JSON file first, then environment overrides."""
    config = AgentConfig()
    if config_file is not None:
        config.load_file(config_file)
    config.load_env(environ)
    return config
