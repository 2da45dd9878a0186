"""Installer manifest definition for the plugin system."""

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass

from pydantic import BaseModel

from review_worker.installers.base import Installer


@dataclass(frozen=True, kw_only=True)
class InstallerManifest[ConfigT: BaseModel]:
    """Manifest describing an installer plugin.

    The manifest contains references to the configuration class and the
    installer factory function for lazy loading of installers based on their key.
    """

    config_cls: type[ConfigT]
    installer_factory: Callable[[ConfigT], AbstractAsyncContextManager[Installer]]
