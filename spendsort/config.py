"""YAML configuration loader for spendsort.

Loads the seed config files from the config/ directory:
  settings.yaml, categories.yaml
"""

from pathlib import Path

import yaml


class Config:
    """Loads and provides access to all YAML configuration files."""

    def __init__(self, config_dir: Path | str = "config"):
        self.config_dir = Path(config_dir)
        if not self.config_dir.is_dir():
            raise FileNotFoundError(f"Config directory not found: {self.config_dir}")

        self._settings: dict | None = None
        self._categories: list[dict] | None = None

    def _load(self, filename: str) -> dict | list:
        path = self.config_dir / filename
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
        if data is None:
            raise ValueError(f"Empty config file: {path}")
        return data

    @property
    def settings(self) -> dict:
        if self._settings is None:
            self._settings = self._load("settings.yaml")
        return self._settings

    @property
    def categories(self) -> list[dict]:
        if self._categories is None:
            data = self._load("categories.yaml")
            if isinstance(data, dict):
                self._categories = data.get("tree", data.get("categories", []))
            else:
                self._categories = data
        return self._categories

    @property
    def database_path(self) -> str:
        return self.settings.get("database_path", "spendsort.db")

    @property
    def default_user(self) -> str:
        return self.settings.get("default_user", "local")

    @property
    def auto_categorize_workers(self) -> int:
        """Worker pool size for the auto-categorization pass. Default: 1."""
        auto = self.settings.get("auto_categorize") or {}
        workers = int(auto.get("workers", 1))
        if workers < 1:
            raise ValueError(f"auto_categorize.workers must be >= 1, got {workers}")
        return workers

    def flatten_category_tree(self) -> dict[str, dict]:
        """Walk the categories tree and return flat lookup: category_id → metadata.

        Each entry has keys: category_id, name, parent_id.  Categories nest
        at most one level deep; a grandchild raises ValueError.
        """
        result: dict[str, dict] = {}
        for node in self.categories:
            cat_id = node.get("id", "")
            if not cat_id:
                continue
            result[cat_id] = {
                "category_id": cat_id,
                "name": node.get("name", cat_id),
                "parent_id": None,
            }
            for child in node.get("children", []) or []:
                child_id = child.get("id", "")
                if not child_id:
                    continue
                if child.get("children"):
                    raise ValueError(
                        f"Category '{child_id}' nests deeper than one level"
                    )
                result[child_id] = {
                    "category_id": child_id,
                    "name": child.get("name", child_id),
                    "parent_id": cat_id,
                }
        return result
