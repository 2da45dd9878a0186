"""HTTP installer implementation."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import aiohttp

from review_worker.installers.base import InstallResult, Installer
from review_worker.installers.http.config import HttpInstallerConfig
from review_worker.models.job import SiteSettings

log = logging.getLogger(__name__)


@dataclass(frozen=True, kw_only=True)
class HttpInstaller(Installer):
    """Installs the site through the JSON install endpoint of the target.

    - POST install: creates the site, 200 on success, an "error" field or
      the response text otherwise
    - POST modules/:name/enable: enables a module, 200 with "enabled": true
    """

    config: HttpInstallerConfig
    session: aiohttp.ClientSession = field(repr=False)

    @classmethod
    @asynccontextmanager
    async def from_config(
        cls, config: HttpInstallerConfig
    ) -> AsyncGenerator["HttpInstaller", None]:
        """Create installer with managed session lifecycle."""
        headers = {"Accept": "application/json"}
        if config.api_token is not None:
            headers["Authorization"] = f"Bearer {config.api_token.get_secret_value()}"

        async with aiohttp.ClientSession(
            base_url=config.api_base_url,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=config.timeout),
        ) as session:
            yield cls(config=config, session=session)

    async def install(self, site: SiteSettings) -> InstallResult:
        """Install the site and report the error message on failure."""
        payload = {
            "site_name": site.name,
            "site_url": site.url,
            "account": {
                "name": site.admin_user,
                "mail": site.admin_email,
                "pass": site.admin_password.get_secret_value(),
            },
            "database": site.database_url.get_secret_value(),
        }

        log.info("Installing site %s at %s", site.name, site.url)

        async with self.session.post("install", json=payload) as response:
            if response.status == 200:
                log.info("Site installed")
                return InstallResult()
            message = await self._error_message(response)

        log.error("Installation failed: %s", message)
        return InstallResult(error=message)

    async def enable_module(self, name: str, version: str) -> bool:
        """Enable a module and report whether the site accepted it."""
        url = f"modules/{quote(name, safe='')}/enable"

        async with self.session.post(url, json={"version": version}) as response:
            if response.status != 200:
                text = await response.text()
                log.error(
                    "Failed to enable module %s: %s %s", name, response.status, text
                )
                return False
            data = await response.json()

        enabled = bool(data.get("enabled", False))
        if not enabled:
            log.error("Module %s was not enabled: %s", name, data)
        return enabled

    @staticmethod
    async def _error_message(response: aiohttp.ClientResponse) -> str:
        text = await response.text()
        try:
            data: Any = await response.json(content_type=None)
        except ValueError:
            data = None
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return f"{response.status} {text}".strip()
