"""Read the deployable version from the project manifest."""
import json
import logging
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from dbbsoft_deploy.descriptor import VersionTag
from dbbsoft_deploy.errors import ConfigurationError

logger = logging.getLogger(__name__)


def read_version_tag(manifest_path: Union[str, Path]) -> VersionTag:
    """Read the ``version`` field of a JSON manifest (e.g. ``package.json``).

    Args:
        manifest_path: Path to the manifest file

    Returns:
        The version as an immutable VersionTag

    Raises:
        ConfigurationError: If the manifest is missing, unreadable, malformed
            or has no usable version
    """
    path = Path(manifest_path)
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(f"version manifest not found: {path}", resource=str(path), operation="read")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"cannot read version manifest: {e}", resource=str(path), operation="read") from e

    try:
        manifest = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"malformed JSON in version manifest: {e}", resource=str(path), operation="read")

    if not isinstance(manifest, dict):
        raise ConfigurationError("version manifest must be a JSON object", resource=str(path), operation="read")

    version = manifest.get("version")
    if not isinstance(version, str) or not version:
        raise ConfigurationError("version manifest has no non-empty 'version' string", resource=str(path), operation="read")
    if version != version.strip():
        raise ConfigurationError(f"version {version!r} has surrounding whitespace", resource=str(path), operation="read")

    try:
        tag = VersionTag(value=version)
    except ValidationError as e:
        raise ConfigurationError(f"invalid version {version!r}: {e.errors()[0]['msg']}", resource=str(path), operation="read")

    logger.info(f"Preparing to deploy version: {tag}")
    return tag
