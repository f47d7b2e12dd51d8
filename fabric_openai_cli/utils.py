from __future__ import annotations

import json
import os
import shutil
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

# Flags whose following argument is a secret and must never be echoed
SECRET_FLAGS = ("--value", "--password", "--client-secret")

PERMISSION_MARKERS = (
    "AuthorizationFailed",
    "does not have authorization",
    "does not have permission",
    "Forbidden",
    "LinkedAuthorizationFailed",
    "Insufficient privileges",
)
MODEL_MARKERS = (
    "DeploymentModelNotSupported",
    "ModelNotFound",
    "InvalidModel",
    "ServiceModelDeprecated",
    "is not supported in this region",
)


class CmdError(Exception):
    pass


class LookupNotFound(CmdError):
    pass


class LookupAmbiguous(CmdError):
    def __init__(self, name: str, object_ids: Sequence[str]) -> None:
        self.name = name
        self.object_ids = list(object_ids)
        super().__init__(
            f"Workspace name '{name}' matches {len(self.object_ids)} service principals: "
            + ", ".join(self.object_ids)
            + ". Set FABRIC_WORKSPACE_PRINCIPAL_ID to disambiguate."
        )


class InsufficientPermissions(CmdError):
    pass


class ModelUnavailable(CmdError):
    pass


def mask_command(cmd: Sequence[str]) -> List[str]:
    masked: List[str] = []
    hide_next = False
    for part in cmd:
        if hide_next:
            masked.append("***")
            hide_next = False
            continue
        masked.append(part)
        if part in SECRET_FLAGS:
            hide_next = True
    return masked


def classify_failure(err: CmdError) -> CmdError:
    """Map a control-plane failure onto the error taxonomy; message kept verbatim."""
    if isinstance(err, (InsufficientPermissions, ModelUnavailable)):
        return err
    text = str(err)
    if any(m in text for m in PERMISSION_MARKERS):
        return InsufficientPermissions(text)
    if any(m in text for m in MODEL_MARKERS):
        return ModelUnavailable(text)
    return err


def run(
    cmd: List[str],
    cwd: Optional[str],
    env: Optional[Mapping[str, str]] = None,
    quiet: bool = False,
) -> str:
    """Execute a command, stream both pipes, and return ONLY stdout text.

    Important: Some callers JSON-parse the return; never mix stderr into it.
    """
    import threading

    shown = " ".join(mask_command(cmd))
    print(f"Running: {shown}")
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=cwd,
            env=dict(env) if env is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            bufsize=1,
        )
    except OSError as e:
        raise CmdError(f"Could not start command: {shown} ({e})") from e

    stdout_buf: list[str] = []
    stderr_buf: list[str] = []

    def pump(pipe, buf: list) -> None:
        try:
            for line in iter(pipe.readline, ""):
                line = line.rstrip()
                if not line:
                    continue
                buf.append(line)
                # Echo to console
                if not quiet:
                    print(line, flush=True)
        finally:
            pipe.close()

    t_out = threading.Thread(target=pump, args=(proc.stdout, stdout_buf), daemon=True)
    t_err = threading.Thread(target=pump, args=(proc.stderr, stderr_buf), daemon=True)
    t_out.start()
    t_err.start()
    rc = proc.wait()
    t_out.join()
    t_err.join()

    out_text = "\n".join(stdout_buf).strip()
    if rc != 0:
        err_text = "\n".join(stderr_buf).strip()
        raise CmdError(
            f"Command failed ({rc}): {shown}\nSTDOUT:\n{out_text}\nSTDERR:\n{err_text}"
        )
    return out_text


def _resolve_az_exe() -> str:
    return shutil.which("az") or shutil.which("az.cmd") or "az"


def az(args: List[str]) -> str:
    return run([_resolve_az_exe(), *args], cwd=None, quiet=True)


def az_json(args: List[str]) -> Any:
    out = az([*args, "-o", "json"])
    if not out:
        return None
    try:
        return json.loads(out)
    except json.JSONDecodeError as e:
        raise CmdError(f"az {' '.join(args)} returned non-JSON output: {e}") from e


def cdktf(project_dir: Path, args: List[str], env: Optional[Mapping[str, str]] = None) -> str:
    merged = dict(os.environ)
    if env:
        merged.update(env)
    return run(["cdktf", *args], cwd=str(project_dir), env=merged)


def signed_in_object_id() -> str:
    return az(["ad", "signed-in-user", "show", "--query", "id", "-o", "tsv"]).strip()


def list_service_principals(display_name: str) -> List[Dict[str, str]]:
    """Return [{id, displayName}] for principals whose display name starts with name."""
    found = az_json(
        [
            "ad",
            "sp",
            "list",
            "--display-name",
            display_name,
            "--query",
            "[].{id:id, displayName:displayName}",
        ]
    )
    return list(found or [])


def list_region_models(location: str) -> List[Dict[str, Any]]:
    return list(az_json(["cognitiveservices", "model", "list", "--location", location]) or [])


def check_models_available(
    requested: Iterable[Tuple[str, str, str]], catalog: Iterable[Mapping[str, Any]]
) -> None:
    """Raise ModelUnavailable unless every (model, version, sku) is offered.

    catalog entries follow `az cognitiveservices model list` output.
    """
    offered: Dict[Tuple[str, str], set] = {}
    for entry in catalog:
        if entry.get("kind") not in (None, "OpenAI"):
            continue
        model = entry.get("model") or {}
        key = (model.get("name", ""), model.get("version", ""))
        skus = {s.get("name") for s in model.get("skus") or []}
        offered.setdefault(key, set()).update(skus)

    missing: List[str] = []
    for name, version, sku in requested:
        skus = offered.get((name, version))
        if skus is None:
            missing.append(f"{name} ({version})")
        elif sku not in skus:
            missing.append(f"{name} ({version}) with SKU {sku}")
    if missing:
        raise ModelUnavailable(
            "Requested models are not available in this region: " + ", ".join(missing)
        )


def find_deleted_key_vault(name: str) -> Optional[Dict[str, Any]]:
    deleted = az_json(["keyvault", "list-deleted", "--resource-type", "vault"]) or []
    for item in deleted:
        if item.get("name") == name:
            return item
    return None


def purge_key_vault(name: str, location: str) -> None:
    az(["keyvault", "purge", "--name", name, "--location", location])


def find_deleted_cognitive_account(name: str) -> Optional[Dict[str, Any]]:
    deleted = az_json(["cognitiveservices", "account", "list-deleted"]) or []
    for item in deleted:
        if item.get("name") == name:
            return item
    return None


def purge_cognitive_account(name: str, resource_group: str, location: str) -> None:
    az(
        [
            "cognitiveservices",
            "account",
            "purge",
            "--name",
            name,
            "--resource-group",
            resource_group,
            "--location",
            location,
        ]
    )
