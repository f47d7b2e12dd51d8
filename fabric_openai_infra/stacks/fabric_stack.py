"""
Fabric stack config helpers.

This module adapts the typed FabricInfrastructureConfig into the pieces the
CDKTF stack and the operator CLI share: the stack name, the output names,
tags and a plain-dict rendition for diagnostics. It imports no provider
bindings so the CLI can load it cheaply.
"""

from dataclasses import asdict
from typing import Any, Dict, List

from fabric_openai_infra.iac_types import FabricInfrastructureConfig

STACK_NAME = "fabric-openai"

OUTPUT_NAMES: List[str] = [
    "KEYVAULT_URI",
    "KEYVAULT_OPENAI_ENDPOINT",
    "KEYVAULT_OPENAI_API_KEY",
    "OPENAI_GPT_MODEL",
    "OPENAI_EMBEDDING_MODEL",
    "KEYVAULT_NAME",
    "OPENAI_NAME",
    "LOCATION",
    "TENANT_ID",
    "RESOURCE_GROUP",
]


def build_tags(config: FabricInfrastructureConfig) -> Dict[str, str]:
    tags = {
        "env-name": config.environment_name,
        "project": config.name_prefix,
        "managed-by": "cdktf",
    }
    if config.workspace.name:
        tags["fabric-workspace"] = config.workspace.name
    return tags


def synth_config_json(config: FabricInfrastructureConfig) -> Dict[str, Any]:
    """Convert dataclasses to plain dict for diagnostics or outputs."""
    return asdict(config)
