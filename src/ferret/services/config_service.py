from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

DEFAULTS: dict[str, dict[str, Any]] = {
    "scan": {
        "recent_minutes": 60,
        "workers": 1,
        "max_depth": None,
        "skip_pseudo_filesystems": True,
    },
    "logging": {
        "level": "WARNING",
        "file": None,
    },
}


@dataclass(frozen=True)
class ConfigPaths:
    path: Path


class ConfigService:
    def __init__(self, paths: ConfigPaths | None = None) -> None:
        self.paths = paths or ConfigPaths(path=self.default_path())

    @classmethod
    def at(cls, path: str | os.PathLike[str] | None) -> ConfigService:
        if path is None:
            return cls()
        return cls(ConfigPaths(path=Path(path)))

    @staticmethod
    def default_path() -> Path:
        xdg = os.environ.get("XDG_CONFIG_HOME")
        if xdg:
            base = Path(xdg)
        else:
            base = Path.home() / ".config"
        return base / "ferret" / "config.json"

    def load(self) -> dict[str, Any]:
        p = self.paths.path
        if not p.exists():
            return {}
        try:
            with open(p, "r", encoding="utf-8") as f:
                obj = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("ignoring config %s: %s", p, e)
            return {}
        if not isinstance(obj, dict):
            logger.warning("ignoring config %s: top level is not an object", p)
            return {}
        return obj

    def get(self, cfg: dict[str, Any], section: str, key: str) -> Any:
        sec = cfg.get(section)
        if isinstance(sec, dict) and key in sec:
            return sec[key]
        return DEFAULTS.get(section, {}).get(key)

    def save(self, cfg: dict[str, Any]) -> None:
        p = self.paths.path
        p.parent.mkdir(parents=True, exist_ok=True)
        tmp = p.with_suffix(p.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(cfg, f, ensure_ascii=False, indent=2, sort_keys=True)
        tmp.replace(p)
