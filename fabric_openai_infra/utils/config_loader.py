"""
Config loader for tfvars + environment -> typed config used by the CDKTF stack.

Functional, pure helpers that parse a minimal subset of .tfvars syntax
for the variables used by this repo. Environment variables set by the
operator CLI (workspace principal, deployer identity) are layered on top.
"""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from fabric_openai_infra.iac_types import (
    FabricInfrastructureConfig,
    KeyVaultConfig,
    ModelDeploymentConfig,
    OpenAIConfig,
    ResolvedPrincipal,
    WorkspaceConfig,
)
from fabric_openai_infra.utils.validation import validate_key_vault_name


DEFAULT_TFVARS_FILE = "vars/dev.tfvars"


def _strip_quotes(value: str) -> str:
    if value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    if value.startswith("'") and value.endswith("'"):
        return value[1:-1]
    return value


def _parse_tfvars(content: str) -> Dict[str, str]:
    """Very small tfvars parser for simple key = value pairs.

    Supports strings, integers, booleans on single lines.
    Lines starting with '#' are ignored.
    """
    vars_map: Dict[str, str] = {}
    for raw in content.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if "=" not in line:
            continue
        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip()
        # Remove potential trailing comments
        if " #" in val:
            val = val.split(" #", 1)[0].strip()
        vars_map[key] = val
    return vars_map


def _to_bool(value: str) -> bool:
    if value.lower() in ("true", "1"):
        return True
    if value.lower() in ("false", "0", ""):
        return False
    raise ValueError(f"Invalid boolean value: {value}")


def _to_int(value: str) -> int:
    try:
        return int(value)
    except Exception as ex:  # noqa: BLE001 - rethrow with context
        raise ValueError(f"Invalid int value: {value}") from ex


def _required(vars_map: Dict[str, str], key: str) -> str:
    if key not in vars_map:
        raise KeyError(f"Missing required var: {key}")
    return vars_map[key]


def _optional(vars_map: Dict[str, str], key: str, default: str) -> str:
    return _strip_quotes(vars_map[key]) if key in vars_map else default


def resource_token(prefix: str, env: str, location: str) -> str:
    """Deterministic 13-char token so names are stable per environment."""
    digest = hashlib.sha256(f"{prefix}|{env}|{location}".encode("utf-8")).hexdigest()
    return digest[:13]


def build_names(prefix: str, env: str, location: str) -> Tuple[str, str, str]:
    token = resource_token(prefix, env, location)
    rg = f"rg-{env}"
    kv = f"kv-{token}"
    oai = f"oai-{token}"
    return rg, kv, oai


def _build_kv_config(vars_map: Dict[str, str], vault_name: str) -> KeyVaultConfig:
    validate_key_vault_name(vault_name)
    return KeyVaultConfig(
        vault_name=vault_name,
        sku=_optional(vars_map, "kv_sku", "standard"),
        soft_delete_retention_days=_to_int(
            _optional(vars_map, "kv_soft_delete_retention_days", "7")
        ),
        purge_protection_enabled=_to_bool(
            _optional(vars_map, "kv_purge_protection_enabled", "false")
        ),
    )


def _build_deployments(vars_map: Dict[str, str]) -> List[ModelDeploymentConfig]:
    deployment_sku = _optional(vars_map, "deployment_sku", "GlobalStandard")
    gpt_model = _optional(vars_map, "gpt_model_name", "gpt-4.1-mini")
    embedding_model = _optional(vars_map, "embedding_model_name", "text-embedding-3-large")
    # Deployment names follow the model names unless overridden
    return [
        ModelDeploymentConfig(
            name=_optional(vars_map, "gpt_deployment_name", gpt_model),
            model_name=gpt_model,
            model_version=_optional(vars_map, "gpt_model_version", "2025-04-14"),
            capacity=_to_int(_optional(vars_map, "gpt_capacity", "30")),
            sku=deployment_sku,
        ),
        ModelDeploymentConfig(
            name=_optional(vars_map, "embedding_deployment_name", embedding_model),
            model_name=embedding_model,
            model_version=_optional(vars_map, "embedding_model_version", "1"),
            capacity=_to_int(_optional(vars_map, "embedding_capacity", "30")),
            sku=deployment_sku,
        ),
    ]


def _build_openai_config(vars_map: Dict[str, str], account_name: str) -> OpenAIConfig:
    return OpenAIConfig(
        account_name=account_name,
        sku=_optional(vars_map, "openai_sku", "S0"),
        custom_subdomain=account_name,
        deployments=_build_deployments(vars_map),
    )


def _build_workspace_config(env: Mapping[str, str]) -> WorkspaceConfig:
    name = (env.get("FABRIC_WORKSPACE_NAME") or "").strip()
    principal_id = (env.get("FABRIC_WORKSPACE_PRINCIPAL_ID") or "").strip()
    principal: Optional[ResolvedPrincipal] = None
    if principal_id:
        source = (env.get("FABRIC_WORKSPACE_PRINCIPAL_SOURCE") or "manual").strip()
        if source not in ("lookup", "manual"):
            raise ValueError(f"Invalid principal source: {source}")
        principal = ResolvedPrincipal(object_id=principal_id, source=source)
    return WorkspaceConfig(name=name, principal=principal)


def build_config(
    vars_map: Dict[str, str], env: Mapping[str, str]
) -> FabricInfrastructureConfig:
    """Build the typed config from parsed tfvars and an environment mapping."""
    env_name = (env.get("AZURE_ENV_NAME") or _strip_quotes(_required(vars_map, "env"))).strip()
    location = (env.get("AZURE_LOCATION") or _strip_quotes(_required(vars_map, "location"))).strip()
    prefix = _strip_quotes(_required(vars_map, "name_prefix"))
    if not env_name:
        raise ValueError("Environment name must not be empty")

    rg_name, kv_name, oai_name = build_names(prefix, env_name, location)

    return FabricInfrastructureConfig(
        environment_name=env_name,
        resource_group_name=rg_name,
        location=location,
        name_prefix=prefix,
        workspace=_build_workspace_config(env),
        key_vault_config=_build_kv_config(vars_map, kv_name),
        openai_config=_build_openai_config(vars_map, oai_name),
        deployer_object_id=(env.get("AZURE_PRINCIPAL_ID") or "").strip() or None,
        purge_on_destroy=_to_bool((env.get("PURGE_ON_DESTROY") or "false").strip()),
    )


def tfvars_path(repo_root: Path, env: Optional[Mapping[str, str]] = None) -> Path:
    env = os.environ if env is None else env
    # Use default if env var is missing or empty
    tfvars_file_env = env.get("TFVARS_FILE")
    tfvars_file = (
        tfvars_file_env
        if (tfvars_file_env and tfvars_file_env.strip())
        else DEFAULT_TFVARS_FILE
    )
    return (repo_root / tfvars_file).resolve()


def load_tfvars_config(
    *, repo_root: Path, env: Optional[Mapping[str, str]] = None
) -> FabricInfrastructureConfig:
    env = os.environ if env is None else env
    vars_path = tfvars_path(repo_root, env)
    if not vars_path.exists():
        raise FileNotFoundError(f"tfvars file not found: {vars_path}")

    content = vars_path.read_text(encoding="utf-8")
    return build_config(_parse_tfvars(content), env)
