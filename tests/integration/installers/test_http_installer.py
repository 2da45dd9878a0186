"""Integration tests for the HTTP installer."""

from collections.abc import AsyncGenerator

import aiohttp
import pytest
from aioresponses import aioresponses as aioresponses_cls
from pydantic import SecretStr
from yarl import URL

from review_worker.installers.http import HttpInstaller, HttpInstallerConfig
from review_worker.models.job import SiteSettings
from review_worker.testing.factories import SiteSettingsFactory
from review_worker.testing.http.payloads import (
    install_error,
    install_success,
    module_enabled,
)

API_BASE_URL = "http://site.test/api/"
INSTALL_URL = f"{API_BASE_URL}install"


@pytest.fixture
def config() -> HttpInstallerConfig:
    """Create test configuration."""
    return HttpInstallerConfig(
        api_base_url=API_BASE_URL, api_token=SecretStr("install-token-123")
    )


@pytest.fixture
async def installer(
    config: HttpInstallerConfig, aioresponses: aioresponses_cls
) -> AsyncGenerator[HttpInstaller, None]:
    """Create installer with managed session."""
    async with HttpInstaller.from_config(config) as impl:
        yield impl


@pytest.fixture
def site() -> SiteSettings:
    """Create site settings with known credentials."""
    return SiteSettingsFactory.build(
        url="http://site.test",
        name="Review site",
        admin_user="admin",
        admin_email="admin@site.test",
        admin_password=SecretStr("s3cret"),
        database_url=SecretStr("mysql://review:review@db/review"),
    )


class TestInstall:
    """Tests for install."""

    async def test_installs_with_correct_payload(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
        site: SiteSettings,
    ) -> None:
        """Posts site and account settings to the install endpoint."""
        aioresponses.post(INSTALL_URL, status=200, payload=install_success())

        result = await installer.install(site)

        assert result.ok
        assert result.error is None
        call = aioresponses.requests[("POST", URL(INSTALL_URL))][0]
        assert call.kwargs["json"] == {
            "site_name": "Review site",
            "site_url": "http://site.test",
            "account": {
                "name": "admin",
                "mail": "admin@site.test",
                "pass": "s3cret",
            },
            "database": "mysql://review:review@db/review",
        }

    async def test_returns_error_field(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
        site: SiteSettings,
    ) -> None:
        """Reports the error message sent by the site."""
        aioresponses.post(
            INSTALL_URL,
            status=500,
            payload=install_error(message="Database connection failed"),
        )

        result = await installer.install(site)

        assert not result.ok
        assert result.error == "Database connection failed"

    async def test_returns_response_text(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
        site: SiteSettings,
    ) -> None:
        """Falls back to status and body when the response is not JSON."""
        aioresponses.post(INSTALL_URL, status=503, body="Service Unavailable")

        result = await installer.install(site)

        assert result.error == "503 Service Unavailable"

    async def test_propagates_connection_errors(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
        site: SiteSettings,
    ) -> None:
        """Lets transport failures reach the caller."""
        aioresponses.post(
            INSTALL_URL, exception=aiohttp.ClientConnectionError("refused")
        )

        with pytest.raises(aiohttp.ClientConnectionError):
            await installer.install(site)


class TestEnableModule:
    """Tests for enable_module."""

    async def test_enables_module(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Posts the module version and reports success."""
        url = f"{API_BASE_URL}modules/block/enable"
        aioresponses.post(url, status=200, payload=module_enabled(name="block"))

        assert await installer.enable_module("block", "7.x-1.0")

        call = aioresponses.requests[("POST", URL(url))][0]
        assert call.kwargs["json"] == {"version": "7.x-1.0"}

    async def test_returns_false_when_not_enabled(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Reports failure when the site refuses the module."""
        aioresponses.post(
            f"{API_BASE_URL}modules/block/enable",
            status=200,
            payload=module_enabled(name="block", enabled=False),
        )

        assert not await installer.enable_module("block", "7.x-1.0")

    async def test_returns_false_on_error_status(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Reports failure for unknown modules."""
        aioresponses.post(
            f"{API_BASE_URL}modules/missing/enable", status=404, body="Not Found"
        )

        assert not await installer.enable_module("missing", "7.x-1.0")


class TestEnableModules:
    """Tests for enable_modules over HTTP."""

    async def test_stops_at_first_failure(
        self,
        installer: HttpInstaller,
        aioresponses: aioresponses_cls,
    ) -> None:
        """Returns the refused module and skips the remaining ones."""
        aioresponses.post(
            f"{API_BASE_URL}modules/block/enable",
            status=200,
            payload=module_enabled(name="block"),
        )
        aioresponses.post(
            f"{API_BASE_URL}modules/node/enable",
            status=200,
            payload=module_enabled(name="node", enabled=False),
        )

        failed = await installer.enable_modules(
            {"block": "7.x-1.0", "node": "7.x-1.0", "views": "7.x-3.0"}
        )

        assert failed == "node"
        assert ("POST", URL(f"{API_BASE_URL}modules/views/enable")) not in (
            aioresponses.requests
        )
