"""
Integration identity for the remote secret client.
Read from the host project's pyproject.toml.
"""

import tomllib
from dataclasses import dataclass
from pathlib import Path

from opconfig.errors import ClientInitError


@dataclass(frozen=True)
class IntegrationIdentity:
    name: str
    version: str


def read_integration_identity(descriptor_path) -> IntegrationIdentity:
    """
    Read the integration name and version from a project descriptor.

    Looks in [project] first, then [tool.poetry]. The version is reported
    with a "v" prefix.

    Raises:
        ClientInitError: If the descriptor is missing, unreadable, or lacks
            a name or version.
    """
    path = Path(descriptor_path)
    try:
        with open(path, "rb") as f:
            descriptor = tomllib.load(f)
    except FileNotFoundError:
        raise ClientInitError(f"Project descriptor not found: {path}")
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ClientInitError(f"Unable to read project descriptor {path}: {e}") from e

    section = descriptor.get("project") or descriptor.get("tool", {}).get("poetry") or {}
    name = section.get("name")
    version = section.get("version")

    if not name or not version:
        raise ClientInitError(
            f"Project descriptor {path} must declare both a name and a version"
        )

    version = str(version)
    if not version.startswith("v"):
        version = f"v{version}"
    return IntegrationIdentity(name=str(name), version=version)
