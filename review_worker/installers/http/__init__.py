"""HTTP installer module."""

from review_worker.installers.http.config import HttpInstallerConfig
from review_worker.installers.http.installer import HttpInstaller
from review_worker.installers.http.manifest import http_manifest

__all__ = ["HttpInstaller", "HttpInstallerConfig", "http_manifest"]
