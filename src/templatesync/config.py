"""Application configuration defaults and the host's templates config."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from pydantic import BaseModel, ValidationError, field_validator

from templatesync.errors import ConfigMalformed, ConfigUnavailable

DEFAULT_CONFIG_DIR = ".obsidian"
TEMPLATES_CONFIG_NAME = "templates.json"


@dataclass(slots=True)
class AppConfig:
    config_dir: str = DEFAULT_CONFIG_DIR
    templates_config: str = TEMPLATES_CONFIG_NAME
    template_field: str = "template"
    debounce_ms: int = 1600
    force_polling: bool = False

    def resolve_templates_config_path(self, vault_root: Path) -> Path:
        return Path(vault_root) / self.config_dir / self.templates_config


class TemplatesConfig(BaseModel):
    """Contents of the host's ``templates.json``."""

    folder: str

    @field_validator("folder")
    @classmethod
    def _normalize_folder(cls, value: str) -> str:
        folder = value.strip().strip("/")
        if not folder:
            raise ValueError("template folder is empty")
        return folder


def load_templates_config(path: Path) -> TemplatesConfig:
    """Read and validate the templates config file."""
    try:
        raw = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigUnavailable(
            f"Failed to read templates config at {path}. Make sure the templates feature is enabled."
        ) from exc

    try:
        return TemplatesConfig.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as exc:
        raise ConfigMalformed(
            f"Failed to get the template folder from {path}. "
            "Make sure a template folder location is configured."
        ) from exc


def is_under_folder(doc_id: str, folder: str) -> bool:
    """Return True when ``doc_id`` lives inside ``folder`` (or any subfolder)."""
    folder_parts = PurePosixPath(folder.strip("/")).parts
    doc_parts = PurePosixPath(doc_id).parts
    if not folder_parts:
        return False
    return doc_parts[: len(folder_parts)] == folder_parts and len(doc_parts) > len(folder_parts)
