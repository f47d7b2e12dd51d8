"""
Secrets module.

Publishes the OpenAI endpoint and primary key into Key Vault under fixed
names. Values are Terraform references resolved at apply time.
"""

from __future__ import annotations

from typing import Dict

from constructs import Construct

from cdktf_cdktf_provider_azurerm.cognitive_account import CognitiveAccount
from cdktf_cdktf_provider_azurerm.key_vault import KeyVault
from cdktf_cdktf_provider_azurerm.key_vault_secret import KeyVaultSecret

OPENAI_ENDPOINT_SECRET = "openai-endpoint"
OPENAI_API_KEY_SECRET = "openai-api-key"


def publish_openai_secrets(
    *, scope: Construct, kv: KeyVault, account: CognitiveAccount
) -> Dict[str, KeyVaultSecret]:
    """Write endpoint and key secrets; return them keyed by secret name."""
    endpoint = KeyVaultSecret(
        scope,
        "openai-endpoint-secret",
        key_vault_id=kv.id,
        name=OPENAI_ENDPOINT_SECRET,
        value=account.endpoint,
        content_type="text/plain",
    )
    api_key = KeyVaultSecret(
        scope,
        "openai-api-key-secret",
        key_vault_id=kv.id,
        name=OPENAI_API_KEY_SECRET,
        value=account.primary_access_key,
        content_type="text/plain",
    )
    return {OPENAI_ENDPOINT_SECRET: endpoint, OPENAI_API_KEY_SECRET: api_key}
