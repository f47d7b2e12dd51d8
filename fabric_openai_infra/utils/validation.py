"""
Preflight validation helpers.

Pure, minimal functions to validate required environment variables,
resource names, and format actionable error messages for users.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Mapping

_KV_NAME = re.compile(r"^[A-Za-z][A-Za-z0-9-]{1,22}[A-Za-z0-9]$")


def missing_env(env: Mapping[str, str], keys: List[str]) -> List[str]:
    """Return the list of keys missing in the provided environment mapping."""
    return [k for k in keys if not env.get(k)]


def format_missing_env_message(missing: List[str]) -> str:
    """Format a friendly, actionable message for missing env vars (bash)."""
    if not missing:
        return ""
    lines: List[str] = []
    lines.append("Preflight check failed: missing environment variables")
    lines.append("")
    lines.append("Missing:")
    for k in missing:
        lines.append(f"  - {k}")
    lines.append("")
    lines.append("How to set them (current shell session):")
    for k in missing:
        lines.append(f'  export {k}="<value>"')
    lines.append("")
    lines.append("Then re-run: fabric-openai infra-deploy")
    return "\n".join(lines)


def validate_key_vault_name(name: str) -> None:
    """Key Vault names: 3-24 chars, alphanumerics and hyphens, start with a letter."""
    if not _KV_NAME.match(name) or "--" in name:
        raise ValueError(f"Invalid Key Vault name: {name!r}")


def duplicate_names(names: Iterable[str]) -> List[str]:
    seen = set()
    dupes: List[str] = []
    for n in names:
        if n in seen and n not in dupes:
            dupes.append(n)
        seen.add(n)
    return dupes
