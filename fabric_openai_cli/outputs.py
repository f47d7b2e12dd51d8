"""
Re-emit stack outputs to a dotenv file for notebook consumption.

Outputs are read from `cdktf output --outputs-file`, so they can be
regenerated at any time without re-provisioning.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

from dotenv import dotenv_values, set_key

from fabric_openai_infra.stacks.fabric_stack import OUTPUT_NAMES

from .utils import CmdError

logger = logging.getLogger(__name__)


def env_file_path(repo_root: Path, environment_name: str) -> Path:
    return repo_root / ".azure" / environment_name / ".env"


def select_outputs(raw: Mapping[str, Any], stack_name: str) -> Dict[str, str]:
    """Pick the fixed output set from a cdktf outputs file payload.

    The payload is keyed by stack name; anything outside the fixed set is
    dropped.
    """
    stack_outputs = raw.get(stack_name)
    if not isinstance(stack_outputs, Mapping):
        raise CmdError(f"No outputs found for stack '{stack_name}'")
    missing = [n for n in OUTPUT_NAMES if n not in stack_outputs]
    if missing:
        raise CmdError("Stack outputs missing: " + ", ".join(missing))
    return {name: str(stack_outputs[name]) for name in OUTPUT_NAMES}


def read_outputs_file(path: Path, stack_name: str) -> Dict[str, str]:
    if not path.exists():
        raise CmdError(f"Outputs file not found: {path}")
    return select_outputs(json.loads(path.read_text(encoding="utf-8")), stack_name)


def write_env_file(outputs: Mapping[str, str], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.touch(exist_ok=True)
    for name in OUTPUT_NAMES:
        set_key(str(path), name, outputs[name], quote_mode="never")
    logger.info("Wrote %d outputs to %s", len(OUTPUT_NAMES), path)
    return path


def load_outputs(path: Path, names: Optional[list] = None) -> Dict[str, str]:
    """Read emitted outputs back, e.g. from a notebook."""
    values = dotenv_values(path)
    wanted = names or OUTPUT_NAMES
    return {k: values[k] for k in wanted if values.get(k) is not None}
