"""
Outputs module.

Emits the fixed set of stack outputs consumed by notebooks. Only secret
names are exported; secret values never appear here.
"""

from __future__ import annotations

from typing import Dict

from constructs import Construct
from cdktf import TerraformOutput

from cdktf_cdktf_provider_azurerm.cognitive_account import CognitiveAccount
from cdktf_cdktf_provider_azurerm.key_vault import KeyVault

from fabric_openai_infra.iac_types import FabricInfrastructureConfig
from fabric_openai_infra.modules.secrets.secrets import (
    OPENAI_API_KEY_SECRET,
    OPENAI_ENDPOINT_SECRET,
)
from fabric_openai_infra.stacks.fabric_stack import OUTPUT_NAMES


def emit_outputs(
    *,
    scope: Construct,
    cfg: FabricInfrastructureConfig,
    kv: KeyVault,
    account: CognitiveAccount,
    rg_name: str,
    tenant_id: str,
) -> Dict[str, TerraformOutput]:
    gpt, embedding = cfg.openai_config.deployments[0], cfg.openai_config.deployments[1]
    values = {
        "KEYVAULT_URI": kv.vault_uri,
        "KEYVAULT_OPENAI_ENDPOINT": OPENAI_ENDPOINT_SECRET,
        "KEYVAULT_OPENAI_API_KEY": OPENAI_API_KEY_SECRET,
        "OPENAI_GPT_MODEL": gpt.name,
        "OPENAI_EMBEDDING_MODEL": embedding.name,
        "KEYVAULT_NAME": kv.name,
        "OPENAI_NAME": account.name,
        "LOCATION": cfg.location,
        "TENANT_ID": tenant_id,
        "RESOURCE_GROUP": rg_name,
    }
    return {
        name: TerraformOutput(scope, name, value=values[name]) for name in OUTPUT_NAMES
    }
