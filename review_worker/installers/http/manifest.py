"""HTTP installer manifest."""

from review_worker.installers.http.config import HttpInstallerConfig
from review_worker.installers.http.installer import HttpInstaller
from review_worker.installers.manifest import InstallerManifest

http_manifest = InstallerManifest(
    config_cls=HttpInstallerConfig,
    installer_factory=HttpInstaller.from_config,
)
