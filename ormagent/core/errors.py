class UpdaterError(Exception):
    """Base class for every failure raised by the update pipeline."""


class ConfigError(UpdaterError):
    """Agent configuration is missing or points at an invalid layout."""


class IdentityError(UpdaterError):
    """The device thing ID could not be resolved from ``id.sh``."""


class FetchError(UpdaterError):
    """HTTP transfer failed or returned a status other than 200."""


class InvalidManifestUrlError(FetchError):
    """Manifest URL cannot be used to derive the archive location."""


class ManifestParseError(UpdaterError):
    """Manifest body is not valid UTF-8 YAML of the expected shape."""


class MismatchError(UpdaterError):
    """Manifest targets a different object type."""


class NoDeviceMatchError(UpdaterError):
    """No manifest device rule matches this thing ID."""


class LedgerError(UpdaterError):
    """Failed-version ledger exists but cannot be decoded."""


class InvalidVersionError(UpdaterError, ValueError):
    """Version string is not a valid semantic version."""


class InvalidArchiveError(UpdaterError):
    """Release archive is corrupt or misses a required entry point."""


class SwapError(UpdaterError):
    """Application directory could not be swapped with the staged one."""


class RevertError(UpdaterError):
    """Rollback failed; the device needs manual intervention."""
