from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from .openai_compat import OpenAICompatProvider

logger = logging.getLogger(__name__)

_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")

DEFAULT_PROVIDER_YAML = "tagforge.yaml"


@dataclass(frozen=True)
class ProviderConfig:
    base_url: str
    model: str
    api_key: str
    name: str = "openai"


def _expand_env_placeholders(s: str) -> str:
    def repl(m: re.Match) -> str:
        var = m.group(1)
        val = os.getenv(var)
        if not val:
            raise ValueError(f"Placeholder '${{{var}}}' not found in environment or is empty.")
        return val

    return _ENV_PATTERN.sub(repl, s)


def load_provider_config(yaml_path: str | Path) -> ProviderConfig:
    """Read the single ``provider:`` mapping from a YAML file.

    Values may reference environment variables as ``${NAME}``.
    """
    p = Path(yaml_path).expanduser().resolve()
    if not p.exists():
        raise FileNotFoundError(f"Config YAML not found: {p}")

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    cfg = data.get("provider") if isinstance(data, dict) else None
    if not isinstance(cfg, dict) or not cfg:
        raise ValueError("YAML must contain a non-empty 'provider:' mapping.")

    fields = {k: cfg.get(k) for k in ("base_url", "model", "api_key")}
    missing = [k for k, v in fields.items() if not v]
    if missing:
        raise ValueError(f"provider missing required field(s): {', '.join(missing)}")

    resolved = {k: _expand_env_placeholders(str(v).strip()) for k, v in fields.items()}
    if not all(resolved.values()):
        raise ValueError("provider has empty base_url/model/api_key after expansion.")

    return ProviderConfig(name=str(cfg.get("name") or "openai"), **resolved)


def resolve_provider(
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    yaml_path: Optional[Path] = None,
) -> OpenAICompatProvider:
    """CLI overrides win over the YAML file."""
    yaml_path = (yaml_path or Path(DEFAULT_PROVIDER_YAML)).expanduser().resolve()
    logger.info("provider config: %s", yaml_path)
    cfg = load_provider_config(yaml_path)

    return OpenAICompatProvider(
        model=model or cfg.model,
        base_url=base_url or cfg.base_url,
        api_key=api_key or cfg.api_key,
        provider_name=cfg.name,
    )
