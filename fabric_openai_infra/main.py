"""
CDKTF entrypoint for the Fabric workspace KeyVault + Azure OpenAI stack.
"""

from __future__ import annotations

from pathlib import Path
import os
import sys

from constructs import Construct
from cdktf import App, TerraformStack

from cdktf_cdktf_provider_azurerm.provider import (
    AzurermProvider,
    AzurermProviderFeatures,
    AzurermProviderFeaturesCognitiveAccount,
    AzurermProviderFeaturesKeyVault,
)
from cdktf_cdktf_provider_azurerm.resource_group import ResourceGroup
from cdktf_cdktf_provider_azurerm.data_azurerm_client_config import (
    DataAzurermClientConfig,
)

from fabric_openai_infra.iac_types import FabricInfrastructureConfig
from fabric_openai_infra.modules.keyvault.keyvault import provision_key_vault
from fabric_openai_infra.modules.openai.openai import provision_openai
from fabric_openai_infra.modules.outputs.outputs import emit_outputs
from fabric_openai_infra.modules.secrets.secrets import publish_openai_secrets
from fabric_openai_infra.stacks.fabric_stack import STACK_NAME, build_tags
from fabric_openai_infra.utils.config_loader import load_tfvars_config
from fabric_openai_infra.utils.validation import missing_env, format_missing_env_message


def build_provider_features(config: FabricInfrastructureConfig) -> AzurermProviderFeatures:
    """Soft-deleted vaults and accounts are kept on destroy unless purging."""
    purge = config.purge_on_destroy
    return AzurermProviderFeatures(
        key_vault=[
            AzurermProviderFeaturesKeyVault(
                purge_soft_delete_on_destroy=purge,
                recover_soft_deleted_key_vaults=True,
            )
        ],
        cognitive_account=[
            AzurermProviderFeaturesCognitiveAccount(purge_soft_delete_on_destroy=purge)
        ],
    )


class FabricOpenAIStack(TerraformStack):
    """TerraformStack that wires Azure resources based on typed config."""

    def __init__(
        self, scope: Construct, id: str, config: FabricInfrastructureConfig
    ) -> None:
        super().__init__(scope, id)

        # Provider
        AzurermProvider(self, "azurerm", features=[build_provider_features(config)])
        client = DataAzurermClientConfig(self, "current")
        tenant_id = client.tenant_id
        # The runner writes the secrets, so it always needs Set on the vault
        deployer_object_ids = [client.object_id]
        if config.deployer_object_id:
            deployer_object_ids.append(config.deployer_object_id)

        tags = build_tags(config)
        rg = ResourceGroup(
            self,
            "rg",
            name=config.resource_group_name,
            location=config.location,
            tags=tags,
        )

        # Key Vault and OpenAI are independent of each other
        kv = provision_key_vault(
            scope=self,
            cfg=config,
            rg_name=rg.name,
            tenant_id=tenant_id,
            deployer_object_ids=deployer_object_ids,
            tags=tags,
        )
        account, _deployments, _role = provision_openai(
            scope=self, cfg=config, rg_name=rg.name, tags=tags
        )

        # Secrets reference both, so they are applied last
        publish_openai_secrets(scope=self, kv=kv, account=account)

        emit_outputs(
            scope=self,
            cfg=config,
            kv=kv,
            account=account,
            rg_name=rg.name,
            tenant_id=tenant_id,
        )


def main() -> None:
    # cdktf runs the app from the project directory
    repo_root = Path.cwd()

    # Preflight: ensure required env vars are present before synthesizing
    required_env = ["ARM_SUBSCRIPTION_ID"]
    missing = missing_env(env=os.environ, keys=required_env)
    if missing:
        msg = format_missing_env_message(missing)
        print(msg, file=sys.stderr)
        sys.exit(2)

    app = App()
    try:
        cfg = load_tfvars_config(repo_root=repo_root)
        FabricOpenAIStack(app, STACK_NAME, cfg)
    except (ValueError, KeyError, FileNotFoundError) as ex:
        # Surface a concise, friendly message instead of a long traceback
        print(f"Error: {ex}", file=sys.stderr)
        sys.exit(1)

    if cfg.workspace.principal is None:
        print(
            "WARNING: no Fabric workspace principal; workspace access grants are omitted.",
            file=sys.stderr,
        )

    try:
        app.synth()
    except Exception as ex:  # noqa: BLE001 - present actionable error
        print("Synthesis failed.", file=sys.stderr)
        print(str(ex), file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
