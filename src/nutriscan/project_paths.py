from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _resolve_from_root(root: Path, value: str) -> Path:
    candidate = Path(value)
    if candidate.is_absolute():
        return candidate
    return (root / candidate).resolve()


def find_project_root(start: Path | None = None) -> Path:
    cursor = (start or Path.cwd()).resolve()
    for candidate in [cursor, *cursor.parents]:
        if (candidate / "pyproject.toml").exists():
            return candidate
    raise RuntimeError("Could not find project root (missing pyproject.toml in parent chain).")


@dataclass(frozen=True, slots=True)
class ProjectPaths:
    root: Path
    data_dir: Path
    rules_dir: Path
    config_path: Path

    @property
    def receipts_dir(self) -> Path:
        return self.data_dir / "receipts"

    @property
    def mappings_path(self) -> Path:
        return self.data_dir / "mappings.json"

    @classmethod
    def detect(cls, start: Path | None = None) -> "ProjectPaths":
        root = find_project_root(start)

        data_dir = _resolve_from_root(root, os.getenv("NUTRISCAN_DATA_DIR", "data"))
        rules_dir = _resolve_from_root(root, os.getenv("NUTRISCAN_RULES_DIR", str(data_dir / "rules")))
        config_path = _resolve_from_root(root, os.getenv("NUTRISCAN_CONFIG", str(data_dir / "config.yml")))

        return cls(root=root, data_dir=data_dir, rules_dir=rules_dir, config_path=config_path)

    @classmethod
    def at(cls, root: Path) -> "ProjectPaths":
        """Layout rooted at an explicit directory, ignoring the environment."""
        data_dir = root / "data"
        return cls(root=root, data_dir=data_dir, rules_dir=data_dir / "rules", config_path=data_dir / "config.yml")

    def ensure_dirs(self) -> None:
        self.receipts_dir.mkdir(parents=True, exist_ok=True)
