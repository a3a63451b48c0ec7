from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..models import Category, CategoryMapping


@dataclass(frozen=True, slots=True)
class RuleSet:
    seed_mappings: list[CategoryMapping]

    @classmethod
    def load_from_dir(cls, rules_dir: Path) -> "RuleSet":
        data = _load_yaml(rules_dir / "category_mappings.yml")

        seed: list[CategoryMapping] = []
        for group in ((data or {}).get("mappings") or []):
            category = group.get("category")
            if Category.coerce(category).value.casefold() != str(category).casefold():
                raise ValueError(f"Unknown category {category!r} in {rules_dir}")
            for keyword in group.get("keywords") or []:
                try:
                    seed.append(CategoryMapping(keyword=str(keyword), category=category))
                except ValidationError as exc:
                    raise ValueError(f"Invalid mapping {keyword!r} in {rules_dir}: {exc}") from exc

        return cls(seed_mappings=seed)


def _load_yaml(path: Path) -> dict | None:
    if not path.exists():
        raise FileNotFoundError(str(path))
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"Expected a YAML mapping at {path}, got {type(data).__name__}.")
    return data
