import json
from pathlib import Path

from pydantic import ValidationError

from invoice_lab.logging.logger import BoundLog, Log
from invoice_lab.targets.exceptions import InvalidTargetError, TargetNotFoundError
from invoice_lab.targets.models import Target, TargetConfig


def target_config_path(targets_dir: Path, target_id: str) -> Path:
    """Build path to a target file: {targets_dir}/config-{target_id}.json"""
    return targets_dir / f"config-{target_id}.json"


class TargetRegistry:
    """Resolves target ids to back-end configurations stored as JSON files."""

    def __init__(self, targets_dir: Path, log: BoundLog | None = None) -> None:
        self._targets_dir = targets_dir
        self._log = log or Log.bind(component="targets")

    def resolve_target(self, target_id: str) -> Target:
        """Load and validate the configuration for ``target_id``.

        Raises:
            TargetNotFoundError: if no configuration file exists.
            InvalidTargetError: if the file is not a valid configuration.
        """
        if not target_id or "/" in target_id or "\\" in target_id or ".." in target_id:
            raise TargetNotFoundError(f"Target '{target_id}' not found")
        path = target_config_path(self._targets_dir, target_id)
        if not path.exists():
            raise TargetNotFoundError(f"Target '{target_id}' not found")
        return self._load(path).to_target()

    def list_targets(self) -> list[TargetConfig]:
        """Return every readable configuration; invalid files are skipped."""
        if not self._targets_dir.exists():
            return []
        configs: list[TargetConfig] = []
        for path in sorted(self._targets_dir.glob("config-*.json")):
            try:
                configs.append(self._load(path))
            except InvalidTargetError as exc:
                self._log.warning(f"Skipping {path.name}: {exc}")
        return configs

    @staticmethod
    def _load(path: Path) -> TargetConfig:
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise InvalidTargetError(f"Cannot read {path.name}: {exc}") from exc
        try:
            return TargetConfig.model_validate(raw)
        except ValidationError as exc:
            raise InvalidTargetError(f"Invalid configuration {path.name}: {exc}") from exc
