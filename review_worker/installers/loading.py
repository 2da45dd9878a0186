"""Discovery of installer plugins registered as entry points."""

import logging
from importlib.metadata import entry_points
from typing import Any

from review_worker.installers.manifest import InstallerManifest

log = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "review_worker.installers"


class InstallerNotFoundError(Exception):
    """Raised when no usable installer is registered under a key."""


def available_installers() -> list[str]:
    """Return the sorted keys of every registered installer."""
    return sorted({entry.name for entry in entry_points(group=ENTRY_POINT_GROUP)})


def load_installer_manifest(key: str) -> InstallerManifest[Any]:
    """Resolve the manifest registered under `key`.

    Third-party packages add installers by declaring an entry point in the
    `review_worker.installers` group whose object is an `InstallerManifest`,
    e.g. `drush = "review_drush.manifest:drush_manifest"`.

    Raises:
        InstallerNotFoundError: If the key is unknown or its entry point does
            not resolve to a manifest

    """
    matches = entry_points(group=ENTRY_POINT_GROUP, name=key)
    if not matches:
        known = ", ".join(available_installers()) or "none"
        raise InstallerNotFoundError(
            f"No installer registered as {key!r} (registered: {known})"
        )

    entry = next(iter(matches))
    manifest = entry.load()
    if not isinstance(manifest, InstallerManifest):
        raise InstallerNotFoundError(
            f"Entry point {entry.value!r} for installer {key!r} is not an "
            "InstallerManifest"
        )

    log.debug("Loaded installer %s from %s", key, entry.value)
    return manifest
