"""
Azure OpenAI module.

Creates the Cognitive Services (OpenAI) account, one deployment per
configured model, and grants the workspace principal a data-plane role on
the account so identity-based callers never need the stored key.
"""

from __future__ import annotations

import re
from typing import Dict, Mapping, Optional, Tuple

from constructs import Construct

from cdktf_cdktf_provider_azurerm.cognitive_account import CognitiveAccount
from cdktf_cdktf_provider_azurerm.cognitive_deployment import (
    CognitiveDeployment,
    CognitiveDeploymentModel,
    CognitiveDeploymentSku,
)
from cdktf_cdktf_provider_azurerm.role_assignment import RoleAssignment

from fabric_openai_infra.iac_types import FabricInfrastructureConfig
from fabric_openai_infra.utils.validation import duplicate_names


def _construct_id(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "-", name)


def provision_openai(
    *,
    scope: Construct,
    cfg: FabricInfrastructureConfig,
    rg_name: str,
    tags: Mapping[str, str],
) -> Tuple[CognitiveAccount, Dict[str, CognitiveDeployment], Optional[RoleAssignment]]:
    """Provision the OpenAI account and return (account, deployments, role)."""
    oai = cfg.openai_config
    dupes = duplicate_names(d.name for d in oai.deployments)
    if dupes:
        raise ValueError(f"Duplicate model deployment names: {', '.join(dupes)}")

    account = CognitiveAccount(
        scope,
        "openai",
        name=oai.account_name,
        location=cfg.location,
        resource_group_name=rg_name,
        kind="OpenAI",
        sku_name=oai.sku,
        custom_subdomain_name=oai.custom_subdomain,
        public_network_access_enabled=True,
        local_auth_enabled=True,
        tags=dict(tags),
    )

    deployments: Dict[str, CognitiveDeployment] = {}
    previous: Optional[CognitiveDeployment] = None
    for d in oai.deployments:
        deployment = CognitiveDeployment(
            scope,
            f"deployment-{_construct_id(d.name)}",
            name=d.name,
            cognitive_account_id=account.id,
            model=CognitiveDeploymentModel(
                format="OpenAI", name=d.model_name, version=d.model_version
            ),
            sku=CognitiveDeploymentSku(name=d.sku, capacity=d.capacity),
            # The service rejects concurrent deployment writes on one account
            depends_on=[previous] if previous is not None else None,
        )
        deployments[d.name] = deployment
        previous = deployment

    role: Optional[RoleAssignment] = None
    principal = cfg.workspace.principal
    if principal is not None:
        role = RoleAssignment(
            scope,
            "workspaceOpenAIUser",
            scope=account.id,
            role_definition_name=oai.data_plane_role,
            principal_id=principal.object_id,
            principal_type="ServicePrincipal",
        )

    return account, deployments, role
