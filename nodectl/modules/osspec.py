"""Parsing and validation of the --os node descriptor.

The descriptor is a comma-separated list of key=value pairs, for example
``os=windows,version=2022``. Only ``os`` and ``version`` are understood;
any other key is kept in ``OSSpec.extra`` so that newer descriptors do not
break older clients, but it is never applied to the node.
"""
import logging
from typing import Dict

from nodectl.config import Config
from nodectl.errors import InvalidOSError, InvalidWindowsVersionError, MalformedSpecError
from nodectl.models import OSSpec

logger = logging.getLogger("nodectl.osspec")

VALID_OS = ("linux", "windows")
VALID_WINDOWS_VERSIONS = ("2019", "2022", "2025")


def parse_os_flag(raw: str) -> OSSpec:
    """Parse the --os flag value into an OSSpec.

    Raises:
        MalformedSpecError: if a pair is not exactly two non-empty tokens
    """
    if not raw or not raw.strip():
        return OSSpec()

    kind = "linux"
    version = ""
    extra: Dict[str, str] = {}

    for part in raw.split(","):
        key, sep, value = part.partition("=")
        key, value = key.strip(), value.strip()
        if not sep or not key or not value:
            raise MalformedSpecError(raw)

        if key == "os":
            kind = value.lower()
        elif key == "version":
            version = value
        else:
            extra[key] = value

    if extra:
        logger.warning(f"Ignoring unrecognized --os keys: {', '.join(sorted(extra))}")

    # Windows Server 2022 unless told otherwise
    if kind == "windows" and not version:
        version = Config.DEFAULT_WINDOWS_VERSION

    return OSSpec(kind=kind, version=version, extra=extra)


def validate_os(kind: str) -> None:
    if kind not in VALID_OS:
        raise InvalidOSError(f"Invalid OS: {kind}. Valid OS are: {', '.join(VALID_OS)}")


def validate_windows_version(version: str) -> None:
    if version not in VALID_WINDOWS_VERSIONS:
        raise InvalidWindowsVersionError(
            f"Invalid Windows version: {version}. "
            f"Valid versions are: {', '.join(VALID_WINDOWS_VERSIONS)}"
        )


def resolve_os(raw: str) -> OSSpec:
    """Parse and fully validate an --os flag value."""
    spec = parse_os_flag(raw)
    validate_os(spec.kind)
    if spec.kind == "windows":
        validate_windows_version(spec.version)
    return spec
