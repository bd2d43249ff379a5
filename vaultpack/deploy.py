"""Sequential upload-then-install of a composed package on target instances."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Protocol, runtime_checkable

from .core.console import ComposeConsole


@dataclass(frozen=True, slots=True)
class Instance:
    """A target server instance, as configured by the deploy workflow."""

    name: str
    url: str


@runtime_checkable
class DeploymentTransport(Protocol):
    """Transport to one instance. Implementations own the network protocol."""

    def upload(self, instance: Instance, archive_path: Path) -> str:
        ...

    def install(self, instance: Instance, remote_path: str) -> None:
        ...


@dataclass(slots=True)
class DeploymentRecord:
    instance: Instance
    remote_path: str


def deploy(
    archive_path: Path,
    instances: Iterable[Instance],
    *,
    transport: DeploymentTransport,
    console: ComposeConsole,
) -> List[DeploymentRecord]:
    """Upload then install *archive_path* on each instance, one at a time.

    The first failing instance stops the deployment; its exception propagates
    unchanged.
    """

    if not archive_path.is_file():
        raise FileNotFoundError(f"Package archive '{archive_path}' does not exist")

    records: List[DeploymentRecord] = []
    for instance in instances:
        console.info(f"Uploading {archive_path.name} to {instance.name} ({instance.url})")
        remote_path = transport.upload(instance, archive_path)
        console.info(f"Installing {remote_path} on {instance.name}")
        transport.install(instance, remote_path)
        records.append(DeploymentRecord(instance=instance, remote_path=remote_path))
    return records


class RecordingTransport:
    """Transport that records calls instead of talking to an instance."""

    def __init__(self, *, remote_dir: str = "/etc/packages/vaultpack") -> None:
        self.remote_dir = remote_dir.rstrip("/")
        self.calls: List[tuple[str, str, str]] = []

    def upload(self, instance: Instance, archive_path: Path) -> str:
        remote_path = f"{self.remote_dir}/{archive_path.name}"
        self.calls.append(("upload", instance.name, str(archive_path)))
        return remote_path

    def install(self, instance: Instance, remote_path: str) -> None:
        self.calls.append(("install", instance.name, remote_path))


__all__ = [
    "DeploymentRecord",
    "DeploymentTransport",
    "Instance",
    "RecordingTransport",
    "deploy",
]
