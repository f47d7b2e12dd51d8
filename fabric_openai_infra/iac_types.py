from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass(frozen=True)
class ResolvedPrincipal:
    object_id: str
    source: str  # "lookup" or "manual"


@dataclass(frozen=True)
class WorkspaceConfig:
    name: str
    principal: Optional[ResolvedPrincipal] = None


@dataclass(frozen=True)
class AccessPolicy:
    object_id: str
    secret_permissions: Tuple[str, ...]


@dataclass(frozen=True)
class KeyVaultConfig:
    vault_name: str
    sku: str
    soft_delete_retention_days: int
    purge_protection_enabled: bool


@dataclass(frozen=True)
class ModelDeploymentConfig:
    name: str
    model_name: str
    model_version: str
    capacity: int
    sku: str  # Standard or GlobalStandard


@dataclass(frozen=True)
class OpenAIConfig:
    account_name: str
    sku: str
    custom_subdomain: str
    deployments: List[ModelDeploymentConfig]
    data_plane_role: str = "Cognitive Services OpenAI User"


@dataclass(frozen=True)
class FabricInfrastructureConfig:
    environment_name: str
    resource_group_name: str
    location: str
    name_prefix: str
    workspace: WorkspaceConfig
    key_vault_config: KeyVaultConfig
    openai_config: OpenAIConfig
    deployer_object_id: Optional[str] = None
    purge_on_destroy: bool = False
