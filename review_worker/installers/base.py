"""Abstract base class for application installers."""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass

from review_worker.models.job import SiteSettings

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class InstallResult:
    """Outcome of installing the application under test."""

    error: str | None = None

    @property
    def ok(self) -> bool:
        """Whether the installation succeeded."""
        return self.error is None


@dataclass(frozen=True, kw_only=True)
class Installer(ABC):
    """Prepares the application instance the tests run against.

    How the installation happens (API call, scripted installer) is up to the
    implementation; the worker only needs success or an error message.
    """

    @abstractmethod
    async def install(self, site: SiteSettings) -> InstallResult:
        """Install a fresh site.

        Args:
            site: Site URL, administrator account and database settings

        Returns:
            Install result carrying an error message on failure

        """

    @abstractmethod
    async def enable_module(self, name: str, version: str) -> bool:
        """Enable one module of the installed site.

        Args:
            name: Module machine name
            version: Version the job was prepared for

        Returns:
            True if the module is enabled

        """

    async def enable_modules(self, modules: Mapping[str, str]) -> str | None:
        """Enable modules in order, stopping at the first failure.

        Returns:
            Name of the module that could not be enabled, None if all were

        """
        for name, version in modules.items():
            log.info("Enabling module %s (%s)", name, version)
            if not await self.enable_module(name, version):
                return name
        return None
