"""Pytest configuration and shared fixtures."""

import json
from pathlib import Path
from typing import Any, Dict, Optional

import pytest
from cdktf import Testing

from fabric_openai_infra.main import FabricOpenAIStack
from fabric_openai_infra.utils.config_loader import build_config

TFVARS = """\
# Environment
env = "dev"
location = "eastus2"
name_prefix = "fabai"

kv_sku = "standard"
gpt_model_name = "gpt-4.1-mini"
gpt_model_version = "2025-04-14"
embedding_model_name = "text-embedding-3-large"
embedding_model_version = "1"
deployment_sku = "GlobalStandard"
"""

BASE_VARS = {
    "env": '"dev"',
    "location": '"eastus2"',
    "name_prefix": '"fabai"',
}


def make_config(env: Optional[Dict[str, str]] = None, **vars_overrides: str):
    vars_map = dict(BASE_VARS)
    vars_map.update(vars_overrides)
    return build_config(vars_map, env or {})


def synth(config) -> Dict[str, Any]:
    stack = FabricOpenAIStack(Testing.app(), "test", config)
    return json.loads(Testing.synth(stack))


@pytest.fixture
def project_dir(tmp_path: Path) -> Path:
    vars_dir = tmp_path / "vars"
    vars_dir.mkdir()
    (vars_dir / "dev.tfvars").write_text(TFVARS, encoding="utf-8")
    return tmp_path


@pytest.fixture
def clean_env(monkeypatch):
    for key in (
        "ARM_CLIENT_ID",
        "AZURE_ENV_NAME",
        "AZURE_LOCATION",
        "AZURE_PRINCIPAL_ID",
        "FABRIC_WORKSPACE_NAME",
        "FABRIC_WORKSPACE_PRINCIPAL_ID",
        "FABRIC_WORKSPACE_PRINCIPAL_SOURCE",
        "PURGE_ON_DESTROY",
        "TFVARS_FILE",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def synthesize():
    return synth
