"""Filesystem layout for harvested deposits."""

from pathlib import Path

from plnstage.domain.models import Deposit


class FilePaths:
    """Resolve where a deposit's files live under the data directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def harvest_dir(self, provider_uuid: str) -> Path:
        """Directory holding one provider's harvested payloads."""
        path = self.root / "received" / provider_uuid
        path.mkdir(parents=True, exist_ok=True)
        return path

    def harvest_file(self, deposit: Deposit) -> Path:
        """Path of a deposit's harvested payload."""
        return self.harvest_dir(deposit.provider_uuid) / deposit.file_name

    def partial_file(self, deposit: Deposit) -> Path:
        """Path a payload is streamed to before it is complete."""
        path = self.harvest_file(deposit)
        return path.with_name(path.name + ".part")

    def artifacts(self, deposit: Deposit) -> list[Path]:
        """Every on-disk path that belongs to a deposit."""
        return [self.harvest_file(deposit), self.partial_file(deposit)]
