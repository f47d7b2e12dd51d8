"""
Fabric workspace identity resolution.

A Fabric workspace identity is backed by a service principal whose display
name equals the workspace name. The directory lookup is prefix based, so
candidates are filtered to exact matches here.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Optional

from fabric_openai_infra.iac_types import ResolvedPrincipal

from .utils import CmdError, LookupAmbiguous, LookupNotFound, list_service_principals

logger = logging.getLogger(__name__)

Lookup = Callable[[str], List[Dict[str, str]]]


def select_principal(name: str, candidates: Iterable[Dict[str, str]]) -> ResolvedPrincipal:
    matches = [c["id"] for c in candidates if c.get("displayName") == name and c.get("id")]
    # The same object can be listed twice; match on distinct ids
    unique = list(dict.fromkeys(matches))
    if not unique:
        raise LookupNotFound(f"No service principal found for workspace '{name}'")
    if len(unique) > 1:
        raise LookupAmbiguous(name, unique)
    return ResolvedPrincipal(object_id=unique[0], source="lookup")


def _lookup_once_retried(name: str, lookup: Lookup) -> List[Dict[str, str]]:
    try:
        return lookup(name)
    except CmdError as first:
        logger.debug("Directory lookup failed, retrying once: %s", first)
    try:
        return lookup(name)
    except CmdError as second:
        raise LookupNotFound(
            f"Directory lookup for workspace '{name}' failed: {second}"
        ) from second


def resolve_workspace_principal(
    name: str,
    manual_object_id: Optional[str] = None,
    lookup: Lookup = list_service_principals,
) -> Optional[ResolvedPrincipal]:
    """Resolve the workspace principal, or None when running degraded.

    A manual object id wins over the lookup. An empty name with no manual id
    skips resolution entirely. LookupAmbiguous propagates.
    """
    if manual_object_id and manual_object_id.strip():
        return ResolvedPrincipal(object_id=manual_object_id.strip(), source="manual")

    name = (name or "").strip()
    if not name:
        logger.warning(
            "No Fabric workspace name supplied; workspace access must be configured manually."
        )
        return None

    try:
        principal = select_principal(name, _lookup_once_retried(name, lookup))
    except LookupNotFound as ex:
        logger.warning(
            "%s. Deploying without workspace grants; set FABRIC_WORKSPACE_PRINCIPAL_ID "
            "to grant access manually.",
            ex,
        )
        return None
    logger.info("Resolved workspace '%s' to principal %s", name, principal.object_id)
    return principal


def principal_env(principal: Optional[ResolvedPrincipal]) -> Dict[str, str]:
    """Environment passed to the CDKTF app for the resolved principal."""
    if principal is None:
        return {"FABRIC_WORKSPACE_PRINCIPAL_ID": "", "FABRIC_WORKSPACE_PRINCIPAL_SOURCE": ""}
    return {
        "FABRIC_WORKSPACE_PRINCIPAL_ID": principal.object_id,
        "FABRIC_WORKSPACE_PRINCIPAL_SOURCE": principal.source,
    }
