"""Test fixtures for manifest-reconciler."""

from collections.abc import Generator
import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar

import pytest
import yaml

from manifest_reconciler.client import InMemoryClient
from manifest_reconciler.install_info import InstallInfo
from manifest_reconciler.installer import Installer
from manifest_reconciler.manifest import CustomObject, NamedResource

TESTDATA_DIR = Path("tests/testdata")
SAMPLE_ID = NamedResource(kind="Sample", namespace="default", name="nginx")
NOW = datetime.datetime(2024, 5, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)


@dataclass
class Sample(CustomObject):
    """Typed custom resource used by tests."""

    kind: ClassVar[str] = "Sample"
    api_version: ClassVar[str] = "operator.kyma-project.io/v1alpha1"

    def component_name(self) -> str:
        return "sample-component"


class FakeInstaller(Installer):
    """Installer returning scripted results and recording its calls."""

    def __init__(self) -> None:
        self.install_results: list[bool | Exception] = []
        self.uninstall_results: list[bool | Exception] = []
        self.installs: list[InstallInfo] = []
        self.uninstalls: list[InstallInfo] = []

    async def install(self, info: InstallInfo) -> bool:
        self.installs.append(info)
        return self._next(self.install_results)

    async def uninstall(self, info: InstallInfo) -> bool:
        self.uninstalls.append(info)
        return self._next(self.uninstall_results)

    @staticmethod
    def _next(results: list[bool | Exception]) -> bool:
        result = results.pop(0) if results else True
        if isinstance(result, Exception):
            raise result
        return result


def clock() -> datetime.datetime:
    """Fixed timestamp for conditions."""
    return NOW


@pytest.fixture(name="sample_doc")
def sample_doc_fixture() -> dict[str, Any]:
    """A raw sample resource document."""
    return yaml.safe_load((TESTDATA_DIR / "sample.yaml").read_text())


@pytest.fixture(name="client")
def client_fixture() -> InMemoryClient:
    """An empty in-memory client."""
    return InMemoryClient()


@pytest.fixture(name="installer")
def installer_fixture() -> Generator[FakeInstaller, None, None]:
    """A scripted installer."""
    yield FakeInstaller()
