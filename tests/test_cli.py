"""CLI orchestration tests with az/cdktf calls replaced."""

import argparse
import json
import logging
import subprocess
import sys
from pathlib import Path

import pytest

from fabric_openai_cli import cli
from fabric_openai_cli.logging_utils import setup_logging
from fabric_openai_cli.utils import (
    CmdError,
    InsufficientPermissions,
    LookupAmbiguous,
    ModelUnavailable,
)
from fabric_openai_infra.stacks.fabric_stack import OUTPUT_NAMES
from fabric_openai_infra.utils.config_loader import build_names

STACK_OUTPUTS = {name: name.lower() for name in OUTPUT_NAMES}
STACK_OUTPUTS["KEYVAULT_OPENAI_API_KEY"] = "openai-api-key"

CATALOG = [
    {"kind": "OpenAI", "model": {"name": "gpt-4.1-mini", "version": "2025-04-14", "skus": [{"name": "GlobalStandard"}]}},
    {"kind": "OpenAI", "model": {"name": "text-embedding-3-large", "version": "1", "skus": [{"name": "GlobalStandard"}]}},
]


class FakeCdktf:
    def __init__(self, fail_on=None, error="boom"):
        self.calls = []
        self.fail_on = fail_on
        self.error = error

    def __call__(self, project_dir, args, env=None):
        self.calls.append((args, dict(env or {})))
        if self.fail_on and args[0] == self.fail_on:
            raise CmdError(self.error)
        if args[0] == "output":
            outputs_file = Path(args[args.index("--outputs-file") + 1])
            outputs_file.write_text(json.dumps({"fabric-openai": STACK_OUTPUTS}), encoding="utf-8")
        return ""


def deploy_args(project_dir, **overrides):
    values = dict(
        project_dir=str(project_dir),
        workspace_name=None,
        principal_id=None,
        skip_model_check=False,
        purge=False,
    )
    values.update(overrides)
    return argparse.Namespace(**values)


@pytest.fixture
def fakes(clean_env):
    fake = FakeCdktf()
    clean_env.setattr(cli, "cdktf", fake)
    clean_env.setattr(cli, "signed_in_object_id", lambda: "user-object-id")
    clean_env.setattr(cli, "list_region_models", lambda location: CATALOG)
    clean_env.setattr(
        cli, "list_service_principals", lambda name: [{"id": "ws-object-id", "displayName": name}]
    )
    return fake


def test_deploy_resolves_workspace_and_emits_outputs(project_dir, fakes, monkeypatch):
    monkeypatch.setenv("ARM_CLIENT_ID", "runner-app-id")
    cli.infra_deploy(deploy_args(project_dir, workspace_name="Sales"))

    commands = [c[0][0] for c in fakes.calls]
    assert commands == ["get", "synth", "deploy", "output"]
    deploy_env = fakes.calls[2][1]
    assert deploy_env["FABRIC_WORKSPACE_PRINCIPAL_ID"] == "ws-object-id"
    assert deploy_env["FABRIC_WORKSPACE_PRINCIPAL_SOURCE"] == "lookup"
    assert deploy_env["FABRIC_WORKSPACE_NAME"] == "Sales"
    assert deploy_env["AZURE_PRINCIPAL_ID"] == "user-object-id"
    assert deploy_env["PURGE_ON_DESTROY"] == "false"

    env_file = project_dir / ".azure" / "dev" / ".env"
    content = env_file.read_text(encoding="utf-8")
    assert "KEYVAULT_OPENAI_API_KEY=openai-api-key" in content


def test_deployer_discovery_skipped_when_provider_uses_az_login(fakes, monkeypatch):
    monkeypatch.setattr(cli, "signed_in_object_id", lambda: pytest.fail("no discovery"))
    assert cli.deployer_env() == {}


def test_deployer_discovery_adds_user_when_runner_is_service_principal(fakes, monkeypatch):
    monkeypatch.setenv("ARM_CLIENT_ID", "runner-app-id")
    assert cli.deployer_env() == {"AZURE_PRINCIPAL_ID": "user-object-id"}


def test_deploy_without_service_principal_leaves_deployer_to_stack(project_dir, fakes):
    cli.infra_deploy(deploy_args(project_dir))
    assert "AZURE_PRINCIPAL_ID" not in fakes.calls[2][1]


def test_deploy_without_workspace_is_degraded(project_dir, fakes):
    cli.infra_deploy(deploy_args(project_dir))
    deploy_env = fakes.calls[2][1]
    assert deploy_env["FABRIC_WORKSPACE_PRINCIPAL_ID"] == ""


def test_deploy_not_found_continues(project_dir, fakes, monkeypatch):
    monkeypatch.setattr(cli, "list_service_principals", lambda name: [])
    cli.infra_deploy(deploy_args(project_dir, workspace_name="Missing"))
    assert fakes.calls[2][1]["FABRIC_WORKSPACE_PRINCIPAL_ID"] == ""


def test_deploy_ambiguous_is_fatal(project_dir, fakes, monkeypatch):
    monkeypatch.setattr(
        cli,
        "list_service_principals",
        lambda name: [{"id": "1", "displayName": name}, {"id": "2", "displayName": name}],
    )
    with pytest.raises(LookupAmbiguous):
        cli.infra_deploy(deploy_args(project_dir, workspace_name="Sales"))
    assert fakes.calls == []


def test_deploy_manual_principal_override(project_dir, fakes, monkeypatch):
    monkeypatch.setattr(
        cli, "list_service_principals", lambda name: pytest.fail("lookup must not run")
    )
    cli.infra_deploy(deploy_args(project_dir, workspace_name="Sales", principal_id="manual-id"))
    deploy_env = fakes.calls[2][1]
    assert deploy_env["FABRIC_WORKSPACE_PRINCIPAL_ID"] == "manual-id"
    assert deploy_env["FABRIC_WORKSPACE_PRINCIPAL_SOURCE"] == "manual"


def test_deploy_model_unavailable_stops_before_apply(project_dir, fakes, monkeypatch):
    monkeypatch.setattr(cli, "list_region_models", lambda location: [])
    with pytest.raises(ModelUnavailable):
        cli.infra_deploy(deploy_args(project_dir))
    assert fakes.calls == []


def test_deploy_permission_failure_is_classified(project_dir, monkeypatch, fakes):
    failing = FakeCdktf(fail_on="deploy", error="AuthorizationFailed: no roleAssignments/write")
    monkeypatch.setattr(cli, "cdktf", failing)
    with pytest.raises(InsufficientPermissions, match="roleAssignments/write"):
        cli.infra_deploy(deploy_args(project_dir))


def test_outputs_rerun_without_provisioning(project_dir, fakes):
    cli.emit_outputs(deploy_args(project_dir))
    first = (project_dir / ".azure" / "dev" / ".env").read_text(encoding="utf-8")
    cli.emit_outputs(deploy_args(project_dir))
    second = (project_dir / ".azure" / "dev" / ".env").read_text(encoding="utf-8")
    assert first == second
    assert [c[0][0] for c in fakes.calls] == ["output", "output"]


def test_destroy_without_purge_keeps_soft_deleted(project_dir, fakes, monkeypatch):
    monkeypatch.setattr(cli, "find_deleted_key_vault", lambda name: pytest.fail("no purge"))
    cli.infra_destroy(deploy_args(project_dir))
    args, env = fakes.calls[0]
    assert args[0] == "destroy"
    assert env["PURGE_ON_DESTROY"] == "false"


def test_destroy_with_purge_frees_names(project_dir, fakes, monkeypatch):
    _, kv_name, oai_name = build_names("fabai", "dev", "eastus2")
    purged = []
    monkeypatch.setattr(cli, "find_deleted_key_vault", lambda name: {"name": name})
    monkeypatch.setattr(cli, "find_deleted_cognitive_account", lambda name: {"name": name})
    monkeypatch.setattr(cli, "purge_key_vault", lambda name, location: purged.append(("kv", name, location)))
    monkeypatch.setattr(
        cli,
        "purge_cognitive_account",
        lambda name, rg, location: purged.append(("oai", name, location)),
    )

    cli.infra_destroy(deploy_args(project_dir, purge=True))

    assert fakes.calls[0][1]["PURGE_ON_DESTROY"] == "true"
    assert purged == [("kv", kv_name, "eastus2"), ("oai", oai_name, "eastus2")]


def test_destroy_purge_skips_already_purged(project_dir, fakes, monkeypatch):
    monkeypatch.setattr(cli, "find_deleted_key_vault", lambda name: None)
    monkeypatch.setattr(cli, "find_deleted_cognitive_account", lambda name: None)
    monkeypatch.setattr(cli, "purge_key_vault", lambda *a: pytest.fail("nothing to purge"))
    monkeypatch.setattr(cli, "purge_cognitive_account", lambda *a: pytest.fail("nothing to purge"))
    cli.infra_destroy(deploy_args(project_dir, purge=True))


def test_main_reports_errors_and_exits(project_dir, fakes, monkeypatch, capsys):
    monkeypatch.setattr(cli, "list_region_models", lambda location: [])
    with pytest.raises(SystemExit) as exc:
        cli.main(["preflight-models", "--project-dir", str(project_dir)])
    assert exc.value.code == 1
    assert "ModelUnavailable" in capsys.readouterr().err


def test_show_config(project_dir, fakes, capsys):
    cli.main(["show-config", "--project-dir", str(project_dir)])
    shown = json.loads(capsys.readouterr().out)
    assert shown["resource_group_name"] == "rg-dev"
    assert shown["workspace"]["principal"] is None


def test_cli_import_does_not_load_provider_bindings():
    code = (
        "import sys, fabric_openai_cli.cli; "
        "print(any(m.startswith('cdktf_cdktf_provider_azurerm') for m in sys.modules))"
    )
    out = subprocess.run(
        [sys.executable, "-c", code],
        cwd=Path(__file__).resolve().parents[1],
        capture_output=True,
        text=True,
        check=True,
    ).stdout
    assert out.strip() == "False"


def test_setup_logging_leaves_library_loggers_alone(monkeypatch):
    names = ("azure", "urllib3")
    for name in names:
        monkeypatch.setattr(logging.getLogger(name), "level", logging.NOTSET)
    setup_logging(verbose=False)
    assert [logging.getLogger(name).level for name in names] == [logging.NOTSET] * 2
