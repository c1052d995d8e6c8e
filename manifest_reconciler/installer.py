"""Installers perform the install and uninstall of a chart on the target cluster.

The reconciler only depends on the `Installer` interface. An install or
uninstall that has started but not finished returns False and is called
again on a later pass; any raised exception fails the current pass only.

`HelmInstaller` is an implementation backed by the `helm` command line tool:

```python
from manifest_reconciler.installer import HelmInstaller
from manifest_reconciler.config import HelmInstallerConfig

installer = HelmInstaller(HelmInstallerConfig(wait=True, timeout="5m"))
ready = await installer.install(install_info)
```
"""

from abc import ABC, abstractmethod
import logging
from pathlib import Path
import re
import tempfile
from typing import Any

import aiofiles
import yaml

from . import command
from .config import HelmInstallerConfig
from .exceptions import HelmException, InstallerError
from .install_info import InstallInfo

__all__ = [
    "Installer",
    "HelmInstaller",
]

_LOGGER = logging.getLogger(__name__)

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")
_NOT_FOUND = "release: not found"


class Installer(ABC):
    """Installs and uninstalls the chart declared by a resource."""

    @abstractmethod
    async def install(self, info: InstallInfo) -> bool:
        """Install or upgrade the release.

        Returns True once the release is installed and ready, False while it is
        still in progress.
        """

    @abstractmethod
    async def uninstall(self, info: InstallInfo) -> bool:
        """Uninstall the release.

        Returns True once the release is removed, False while removal is still
        in progress.
        """


def _flag_name(key: str) -> str:
    """Convert an installer flag key such as `CreateNamespace` to `create-namespace`."""
    return _CAMEL_RE.sub("-", key).replace("_", "-").lower()


def _flag_args(release_name: str, flags: dict[str, Any]) -> list[str]:
    args: list[str] = []
    for key, value in flags.items():
        if isinstance(value, (dict, list)):
            raise InstallerError(
                release_name, f"flag '{key}' must be a scalar value, found {value}"
            )
        if value is None or value is False:
            continue
        name = _flag_name(key)
        if value is True:
            args.append(f"--{name}")
        else:
            args.append(f"--{name}={value}")
    return args


class HelmInstaller(Installer):
    """Installer that manages releases with the helm command line tool."""

    def __init__(self, config: HelmInstallerConfig | None = None) -> None:
        """Initialize HelmInstaller."""
        self._config = config or HelmInstallerConfig()

    def _base_args(self, info: InstallInfo) -> tuple[list[str], dict[str, Any]]:
        """Return cluster selection args and the remaining installer flags."""
        flags = dict(info.chart.flags)
        namespace = None
        for key in list(flags):
            if key.lower() == "namespace":
                namespace = flags.pop(key)
        if namespace is None:
            namespace = info.resource.resource_id.namespace
        args = []
        if namespace:
            args.extend(["--namespace", str(namespace)])
        if info.remote.kubeconfig:
            args.extend(["--kubeconfig", str(info.remote.kubeconfig)])
        if info.remote.kube_context:
            args.extend(["--kube-context", info.remote.kube_context])
        return args, flags

    async def install(self, info: InstallInfo) -> bool:
        """Install or upgrade the release with `helm upgrade --install`."""
        release_name = info.chart.release_name
        base_args, flags = self._base_args(info)
        args = [
            self._config.helm_binary,
            "upgrade",
            release_name,
            info.chart.chart_path,
            "--install",
            *base_args,
            *_flag_args(release_name, flags),
        ]
        if self._config.force:
            args.append("--force")
        if self._config.verify:
            args.append("--verify")
        if self._config.wait:
            args.append("--wait")
        if self._config.timeout:
            args.extend(["--timeout", self._config.timeout])

        with tempfile.TemporaryDirectory() as tmp_dir:
            if info.chart.set_values:
                values_file = Path(tmp_dir) / "values.yaml"
                async with aiofiles.open(values_file, mode="w") as f:
                    await f.write(
                        yaml.dump(dict(info.chart.set_values), sort_keys=False)
                    )
                args.extend(["--values", str(values_file)])
            _LOGGER.info(
                "Installing chart %s as release %s", info.chart.chart_path, release_name
            )
            await command.run(command.Command(args, exc=HelmException))

        if not info.check_ready_states:
            return True
        ready = await info.check_fn(info.resource.base_resource, info.remote)
        _LOGGER.debug("Release %s ready: %s", release_name, ready)
        return ready

    async def uninstall(self, info: InstallInfo) -> bool:
        """Uninstall the release with `helm uninstall`."""
        release_name = info.chart.release_name
        base_args, _ = self._base_args(info)
        args = [self._config.helm_binary, "uninstall", release_name, *base_args]
        if self._config.wait:
            args.append("--wait")
        if self._config.timeout:
            args.extend(["--timeout", self._config.timeout])
        _LOGGER.info("Uninstalling release %s", release_name)
        try:
            await command.run(command.Command(args, exc=HelmException))
        except HelmException as err:
            if _NOT_FOUND not in str(err):
                raise
            _LOGGER.debug("Release %s already uninstalled", release_name)
        return True
