"""
Key Vault module.

Creates Azure Key Vault with soft delete and access-policy authorization.
The Terraform runner and any named deployer get full secret permissions;
the Fabric workspace principal, when resolved, gets read-only secret
permissions.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence

from constructs import Construct

from cdktf_cdktf_provider_azurerm.key_vault import KeyVault, KeyVaultAccessPolicy

from fabric_openai_infra.iac_types import (
    AccessPolicy,
    FabricInfrastructureConfig,
    ResolvedPrincipal,
)

SECRET_PERMISSION_ORDER = ("Get", "List", "Set", "Delete")
DEPLOYER_SECRET_PERMISSIONS = ("Get", "List", "Set", "Delete")
READER_SECRET_PERMISSIONS = ("Get", "List")


def build_access_policies(
    deployer_object_ids: Sequence[str], workspace_principal: Optional[ResolvedPrincipal]
) -> List[AccessPolicy]:
    """Return access policies keyed by object id.

    A principal listed more than once gets the union of its permissions, so
    the result never holds two entries for the same object id.
    """
    grants: Dict[str, set] = {}
    for object_id in deployer_object_ids:
        grants.setdefault(object_id, set()).update(DEPLOYER_SECRET_PERMISSIONS)
    if workspace_principal is not None:
        grants.setdefault(workspace_principal.object_id, set()).update(
            READER_SECRET_PERMISSIONS
        )
    return [
        AccessPolicy(
            object_id=object_id,
            secret_permissions=tuple(p for p in SECRET_PERMISSION_ORDER if p in perms),
        )
        for object_id, perms in grants.items()
    ]


def provision_key_vault(
    *,
    scope: Construct,
    cfg: FabricInfrastructureConfig,
    rg_name: str,
    tenant_id: str,
    deployer_object_ids: Sequence[str],
    tags: Mapping[str, str],
) -> KeyVault:
    """Provision Key Vault and return it."""
    policies = build_access_policies(deployer_object_ids, cfg.workspace.principal)
    kv = KeyVault(
        scope,
        "keyVault",
        name=cfg.key_vault_config.vault_name,
        location=cfg.location,
        resource_group_name=rg_name,
        tenant_id=tenant_id,
        sku_name=cfg.key_vault_config.sku,
        soft_delete_retention_days=cfg.key_vault_config.soft_delete_retention_days,
        purge_protection_enabled=cfg.key_vault_config.purge_protection_enabled,
        rbac_authorization_enabled=False,
        public_network_access_enabled=True,
        access_policy=[
            KeyVaultAccessPolicy(
                tenant_id=tenant_id,
                object_id=p.object_id,
                secret_permissions=list(p.secret_permissions),
            )
            for p in policies
        ],
        tags=dict(tags),
    )
    return kv
