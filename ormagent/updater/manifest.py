"""Device manifest client.

The manifest is a YAML document served next to the release archives::

    object_type: gateway
    devices:
      - pattern: "^gw-eu-"
        version: 1.4.0

Scalars are read as plain text (``1.10`` stays ``"1.10"``). The first
device whose pattern matches the thing ID reported by the
application's ``id.sh`` decides the target version.
"""

from __future__ import annotations

import logging
import re
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import requests  # type: ignore[import-untyped]
import yaml

from ..core.errors import FetchError, IdentityError, ManifestParseError, MismatchError

logger = logging.getLogger(__name__)

THING_ID_PATTERN = re.compile(r"[A-Za-z][A-Za-z0-9-]*")
DEFAULT_TIMEOUT_SEC = 30.0


@dataclass(frozen=True)
class Device:
    pattern: str
    version: str


@dataclass
class Manifest:
    object_type: str
    devices: list[Device]
    _compiled: dict[int, Optional[re.Pattern]] = field(default_factory=dict, init=False, repr=False, compare=False)

    def _pattern_for(self, index: int) -> Optional[re.Pattern]:
        if index not in self._compiled:
            raw = self.devices[index].pattern
            try:
                self._compiled[index] = re.compile(raw)
            except re.error as e:
                logger.warning("Invalid pattern %r: %s", raw, e)
                self._compiled[index] = None
        return self._compiled[index]

    def match(self, thing_id: str) -> Optional[Device]:
        """First device, in declared order, whose pattern matches ``thing_id``."""
        for index, device in enumerate(self.devices):
            compiled = self._pattern_for(index)
            if compiled is not None and compiled.search(thing_id):
                return device
        return None

    def __str__(self) -> str:
        rules = "\n".join(f"{d.pattern} = {d.version}" for d in self.devices)
        return f"[meta]\nobject_type = {self.object_type}\n\n[devices]\n{rules}"


def resolve_thing_id(app_dir: Path) -> str:
    """Run the application's ``id.sh`` and return the trimmed thing ID."""
    id_script = Path(app_dir) / "id.sh"
    try:
        result = subprocess.run([str(id_script)], capture_output=True, check=False)
    except OSError as e:
        raise IdentityError(f"Fails to execute command {id_script}: {e}") from e

    try:
        thing_id = result.stdout.decode("utf-8").strip()
    except UnicodeDecodeError as e:
        raise IdentityError(f"Output of {id_script} is not valid UTF-8: {e}") from e

    if not THING_ID_PATTERN.fullmatch(thing_id):
        raise IdentityError(f"Invalid thing ID from {id_script}: {thing_id!r}")

    logger.debug("Thing ID = %s", thing_id)
    return thing_id


def fetch_manifest(
    manifest_url: str,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    user_agent: str = "orm-agent/1.0",
) -> bytes:
    logger.info("Fetching manifest from '%s' ...", manifest_url)
    try:
        response = requests.get(manifest_url, headers={"User-Agent": user_agent}, timeout=timeout)
    except requests.RequestException as e:
        raise FetchError(f"Fails to fetch manifest {manifest_url}: {e}") from e

    status = int(response.status_code)
    logger.debug("Manifest request status: %s", status)
    if status != 200:
        raise FetchError(f"Fails to fetch manifest: status = {status} != 200")
    return response.content


def _require(entry: dict[str, Any], key: str, where: str) -> Any:
    if key not in entry or entry[key] in (None, ""):
        raise ManifestParseError(f"Missing '{key}' in {where}")
    value = entry[key]
    if isinstance(value, (dict, list)):
        raise ManifestParseError(f"Invalid '{key}' in {where}: {value!r}")
    return value


def parse_manifest(body: bytes) -> Manifest:
    try:
        text = body.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ManifestParseError(f"UTF8 error: {e}") from e

    logger.debug("YAML\n%s\n---", text)

    try:
        data = yaml.load(text, Loader=yaml.BaseLoader)
    except yaml.YAMLError as e:
        raise ManifestParseError(f"YAML error: {e}") from e

    if not isinstance(data, dict):
        raise ManifestParseError("Manifest must be a mapping")

    object_type = _require(data, "object_type", "manifest")
    raw_devices = data.get("devices")
    if not isinstance(raw_devices, list):
        raise ManifestParseError("Manifest 'devices' must be a list")

    devices = []
    for position, entry in enumerate(raw_devices):
        where = f"device #{position}"
        if not isinstance(entry, dict):
            raise ManifestParseError(f"Invalid {where}: {entry!r}")
        devices.append(
            Device(
                pattern=str(_require(entry, "pattern", where)),
                version=str(_require(entry, "version", where)),
            )
        )

    return Manifest(object_type=str(object_type), devices=devices)


def device_settings(
    object_type: str,
    manifest_url: str,
    thing_id: str,
    timeout: float = DEFAULT_TIMEOUT_SEC,
    user_agent: str = "orm-agent/1.0",
) -> Optional[Device]:
    """Fetch the manifest and return the device rule assigned to ``thing_id``."""
    manifest = parse_manifest(fetch_manifest(manifest_url, timeout=timeout, user_agent=user_agent))

    logger.debug("Manifest\n---\n%s\n---", manifest)

    if manifest.object_type != object_type:
        raise MismatchError(f"Unexpected object_type: {manifest.object_type} != {object_type}")

    device = manifest.match(thing_id)
    logger.debug("Update settings = %s", device)
    return device
