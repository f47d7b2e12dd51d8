from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
from pathlib import Path
from typing import Dict, Optional

from fabric_openai_infra.iac_types import FabricInfrastructureConfig
from fabric_openai_infra.stacks.fabric_stack import STACK_NAME, synth_config_json
from fabric_openai_infra.utils.config_loader import load_tfvars_config

from .identity import principal_env, resolve_workspace_principal
from .logging_utils import setup_logging
from .outputs import env_file_path, read_outputs_file, write_env_file
from .utils import (
    CmdError,
    cdktf,
    check_models_available,
    classify_failure,
    find_deleted_cognitive_account,
    find_deleted_key_vault,
    list_region_models,
    list_service_principals,
    purge_cognitive_account,
    purge_key_vault,
    signed_in_object_id,
)

logger = logging.getLogger(__name__)


def _project(args: argparse.Namespace) -> Path:
    project = Path(args.project_dir)
    if not project.exists():
        raise CmdError(f"Project directory not found: {project}")
    return project


def _load_config(project: Path, overrides: Optional[Dict[str, str]] = None) -> FabricInfrastructureConfig:
    env = dict(os.environ)
    if overrides:
        env.update(overrides)
    try:
        return load_tfvars_config(repo_root=project, env=env)
    except (ValueError, KeyError, FileNotFoundError) as ex:
        raise CmdError(str(ex)) from ex


def resolve_identity(args: argparse.Namespace) -> Dict[str, str]:
    """Resolve the workspace principal and return the env for the CDKTF app."""
    name = args.workspace_name if args.workspace_name is not None else os.getenv("FABRIC_WORKSPACE_NAME", "")
    manual = args.principal_id or os.getenv("FABRIC_WORKSPACE_PRINCIPAL_ID", "")
    principal = resolve_workspace_principal(name, manual, lookup=list_service_principals)
    if principal is None:
        print("Workspace principal: <none> (workspace grants omitted)")
    else:
        print(f"Workspace principal: {principal.object_id} ({principal.source})")
    return principal_env(principal)


def deployer_env() -> Dict[str, str]:
    """Name the signed-in user as an extra deployer when Terraform runs as an SP.

    Without ARM_CLIENT_ID the provider authenticates as the az CLI user, and the
    stack already grants its client config identity.
    """
    if os.getenv("AZURE_PRINCIPAL_ID") or not os.getenv("ARM_CLIENT_ID"):
        return {}
    try:
        object_id = signed_in_object_id()
    except CmdError as e:
        logger.warning("Could not discover signed-in user: %s", e)
        return {}
    return {"AZURE_PRINCIPAL_ID": object_id} if object_id else {}


def preflight_models(args: argparse.Namespace) -> None:
    cfg = _load_config(_project(args))
    requested = [
        (d.model_name, d.model_version, d.sku) for d in cfg.openai_config.deployments
    ]
    print(f"Checking model availability in {cfg.location}...")
    check_models_available(requested, list_region_models(cfg.location))
    print("All requested models are available.")


def emit_outputs(args: argparse.Namespace) -> Path:
    project = _project(args)
    cfg = _load_config(project)
    with tempfile.TemporaryDirectory() as t:
        outputs_file = Path(t) / "outputs.json"
        cdktf(project, ["output", STACK_NAME, "--outputs-file", str(outputs_file)])
        outputs = read_outputs_file(outputs_file, STACK_NAME)
    path = write_env_file(outputs, env_file_path(project, cfg.environment_name))
    for name, value in outputs.items():
        print(f"{name}={value}")
    print(f"Outputs written to {path}")
    return path


def infra_deploy(args: argparse.Namespace) -> None:
    project = _project(args)
    env: Dict[str, str] = {}
    env.update(deployer_env())
    env.update(resolve_identity(args))
    if args.workspace_name is not None:
        env["FABRIC_WORKSPACE_NAME"] = args.workspace_name
    env["PURGE_ON_DESTROY"] = "false"

    if not args.skip_model_check:
        preflight_models(args)

    try:
        print("Synthesizing CDKTF...")
        cdktf(project, ["get"], env=env)  # ensure providers
        cdktf(project, ["synth"], env=env)  # generate JSON tf
        print("Deploying CDKTF...")
        cdktf(project, ["deploy", STACK_NAME, "--auto-approve"], env=env)
    except CmdError as e:
        raise classify_failure(e) from e
    print("CDKTF deploy completed.")
    emit_outputs(args)


def purge_soft_deleted(cfg: FabricInfrastructureConfig) -> None:
    """Purge soft-deleted resources left by this environment so names can be reused."""
    kv_name = cfg.key_vault_config.vault_name
    if find_deleted_key_vault(kv_name):
        print(f"Purging soft-deleted Key Vault {kv_name}...")
        purge_key_vault(kv_name, cfg.location)
    oai_name = cfg.openai_config.account_name
    if find_deleted_cognitive_account(oai_name):
        print(f"Purging soft-deleted OpenAI account {oai_name}...")
        purge_cognitive_account(oai_name, cfg.resource_group_name, cfg.location)


def infra_destroy(args: argparse.Namespace) -> None:
    project = _project(args)
    purge = bool(args.purge)
    env = {"PURGE_ON_DESTROY": "true" if purge else "false"}
    cfg = _load_config(project, env)
    print("Destroying CDKTF-managed infrastructure...")
    try:
        cdktf(project, ["destroy", STACK_NAME, "--auto-approve"], env=env)
    except CmdError as e:
        raise classify_failure(e) from e
    if purge:
        purge_soft_deleted(cfg)
    print("Destroy completed.")


def show_config(args: argparse.Namespace) -> None:
    cfg = _load_config(_project(args))
    print(json.dumps(synth_config_json(cfg), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fabric-openai",
        description="Provision Key Vault + Azure OpenAI for a Fabric workspace",
    )
    parser.add_argument("--verbose", action="store_true")
    sub = parser.add_subparsers(dest="cmd", required=True)

    rid = sub.add_parser("resolve-identity", help="Resolve the workspace service principal")
    rid.add_argument("--workspace-name")
    rid.add_argument("--principal-id", help="Manual principal object id override")
    rid.set_defaults(func=resolve_identity)

    pm = sub.add_parser("preflight-models", help="Check model availability in region")
    pm.add_argument("--project-dir", default=".")
    pm.set_defaults(func=preflight_models)

    idep = sub.add_parser("infra-deploy", help="Deploy infrastructure via CDKTF")
    idep.add_argument("--project-dir", default=".")
    idep.add_argument("--workspace-name")
    idep.add_argument("--principal-id", help="Manual principal object id override")
    idep.add_argument("--skip-model-check", action="store_true")
    idep.set_defaults(func=infra_deploy)

    ides = sub.add_parser("infra-destroy", help="Destroy infrastructure via CDKTF")
    ides.add_argument("--project-dir", default=".")
    ides.add_argument(
        "--purge",
        action="store_true",
        help="Also purge soft-deleted Key Vault and OpenAI account (irreversible)",
    )
    ides.set_defaults(func=infra_destroy)

    out = sub.add_parser("outputs", help="Re-emit stack outputs to .azure/<env>/.env")
    out.add_argument("--project-dir", default=".")
    out.set_defaults(func=emit_outputs)

    cfg = sub.add_parser("show-config", help="Print the resolved stack config")
    cfg.add_argument("--project-dir", default=".")
    cfg.set_defaults(func=show_config)

    return parser


def main(argv: Optional[list] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)
    try:
        args.func(args)
    except CmdError as e:
        print(f"Error ({type(e).__name__}): {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
