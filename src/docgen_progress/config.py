from __future__ import annotations

import json
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field


class ReporterConfig(BaseModel):
    """Settings for progress tracking and interrupt handling."""

    # error | reset
    duplicate_policy: Literal["error", "reset"] = "error"
    # ignore | auto_register
    unknown_task_policy: Literal["ignore", "auto_register"] = "ignore"
    # 100% progress is a hint only unless this is set
    auto_complete_on_full: bool = False

    interrupt_debounce_seconds: float = Field(default=0.5, ge=0)
    force_quit_exit_code: int = Field(default=130, ge=1, le=255)
    hard_force_quit: bool = True
    escape_key: bool = True

    checkpoint_path: str = Field(default_factory=lambda: str(config_dir() / "checkpoint.json"))
    verbose: bool = False

    def validate_ready(self) -> None:
        if not self.checkpoint_path:
            raise ValueError("Config 'checkpoint_path' is not set. Run: docgen-progress config --checkpoint ...")


def config_dir() -> Path:
    return Path.home() / ".docgen-progress"


def config_path() -> Path:
    return config_dir() / "config.json"


def load_config() -> ReporterConfig:
    path = config_path()
    if not path.exists():
        return ReporterConfig()
    data = json.loads(path.read_text(encoding="utf-8"))
    return ReporterConfig(**data)


def save_config(cfg: ReporterConfig) -> None:
    d = config_dir()
    d.mkdir(parents=True, exist_ok=True)
    config_path().write_text(cfg.model_dump_json(indent=2), encoding="utf-8")
