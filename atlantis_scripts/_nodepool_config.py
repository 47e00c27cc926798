"""Resolve the expected nodepool for a deployment from atlantis checkouts.

Each namespace is owned by an ``atlantis-<namespace>`` OpenTofu repository.
The nodepool a deployment should run on is declared, in priority order, by:

1. ``deployments.<name>.nodepool`` in ``onx-<environment>.tfvars``;
2. a top-level ``nodepool`` in the same file;
3. the ``default`` of ``variable "nodepool"`` in ``variables.tf``;
4. the literal ``"core"``.

Files are parsed with python-hcl2 rather than scanned line by line, so a
deployment entry yields exactly one nodepool regardless of formatting.

Examples
--------
>>> workload_type_from_nodepool("prometheus-spot")
'prometheus'
>>> resolve_expected_nodepool(Path("/nonexistent"), "billing", "api", "daily")
'core'
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import hcl2
from lark.exceptions import LarkError

from atlantis_scripts._affinity_errors import NodepoolConfigError

DEFAULT_NODEPOOL = "core"
VARIABLES_FILE = "variables.tf"

logger = logging.getLogger(__name__)


def atlantis_repo_path(atlantis_path: Path, namespace: str) -> Path:
    """Return the checkout directory for the repository owning *namespace*."""
    return atlantis_path / f"atlantis-{namespace}"


def tfvars_filename(environment: str) -> str:
    """Return the per-environment variables file name.

    Examples
    --------
    >>> tfvars_filename("staging")
    'onx-staging.tfvars'
    """
    return f"onx-{environment}.tfvars"


def workload_type_from_nodepool(nodepool: str | None) -> str:
    """Derive the workload type label from a nodepool name.

    Parameters
    ----------
    nodepool : str | None
        Nodepool name such as ``core-spot``.

    Returns
    -------
    str
        The part before the first hyphen, or ``core`` for empty input.

    Examples
    --------
    >>> workload_type_from_nodepool("core-spot")
    'core'
    >>> workload_type_from_nodepool("")
    'core'
    """
    if not nodepool:
        return DEFAULT_NODEPOOL
    return nodepool.split("-", 1)[0]


def _unquote(value: object) -> object:
    """Strip surrounding double quotes that some hcl2 releases keep."""
    if isinstance(value, str) and len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _normalise(node: Any) -> Any:
    if isinstance(node, Mapping):
        return {_unquote(key): _normalise(value) for key, value in node.items()}
    if isinstance(node, list):
        return [_normalise(item) for item in node]
    return _unquote(node)


def load_hcl(path: Path) -> dict[str, Any]:
    """Parse an HCL file into a plain mapping with unquoted keys and strings.

    Raises
    ------
    NodepoolConfigError
        When the file is not valid HCL.
    """
    try:
        with path.open(encoding="utf-8") as handle:
            tree = hcl2.load(handle)
    except (LarkError, ValueError, UnicodeDecodeError) as exc:
        msg = f"{path}: unable to parse HCL: {exc}"
        raise NodepoolConfigError(msg) from exc
    return _normalise(tree)


def _string_value(node: Mapping[str, Any], key: str) -> str | None:
    value = node.get(key)
    if isinstance(value, str) and value:
        return value
    return None


def _deployment_nodepool(tfvars: Mapping[str, Any], deployment: str) -> str | None:
    deployments = tfvars.get("deployments")
    if not isinstance(deployments, Mapping):
        return None
    entry = deployments.get(deployment)
    if not isinstance(entry, Mapping):
        return None
    return _string_value(entry, "nodepool")


def _variable_default(variables: Mapping[str, Any], name: str) -> str | None:
    # hcl2 renders each block type as a list of {label: body} mappings.
    blocks = variables.get("variable", [])
    if isinstance(blocks, Mapping):
        blocks = [blocks]
    for block in blocks:
        if not isinstance(block, Mapping):
            continue
        body = block.get(name)
        if isinstance(body, Mapping):
            return _string_value(body, "default")
    return None


def _load_optional(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        return load_hcl(path)
    except NodepoolConfigError as exc:
        logger.warning("Ignoring unreadable atlantis config: %s", exc)
        return None


def resolve_expected_nodepool(
    atlantis_path: Path,
    namespace: str,
    deployment: str,
    environment: str,
) -> str:
    """Return the nodepool a deployment is declared to run on.

    Parameters
    ----------
    atlantis_path : Path
        Directory containing the ``atlantis-*`` checkouts.
    namespace : str
        Kubernetes namespace, mapped to ``atlantis-<namespace>``.
    deployment : str
        Deployment name looked up in the ``deployments`` map.
    environment : str
        Environment selecting ``onx-<environment>.tfvars``.

    Returns
    -------
    str
        The resolved nodepool name; ``core`` when nothing declares one.
    """
    repo = atlantis_repo_path(atlantis_path, namespace)
    if not repo.is_dir():
        return DEFAULT_NODEPOOL

    tfvars = _load_optional(repo / tfvars_filename(environment))
    if tfvars is not None:
        nodepool = _deployment_nodepool(tfvars, deployment) or _string_value(
            tfvars, "nodepool"
        )
        if nodepool:
            return nodepool

    variables = _load_optional(repo / VARIABLES_FILE)
    if variables is not None:
        nodepool = _variable_default(variables, "nodepool")
        if nodepool:
            return nodepool

    return DEFAULT_NODEPOOL


def resolve_expected_workload_type(
    atlantis_path: Path,
    namespace: str,
    deployment: str,
    environment: str,
) -> tuple[str, str]:
    """Return ``(nodepool, workload_type)`` for a deployment."""
    nodepool = resolve_expected_nodepool(atlantis_path, namespace, deployment, environment)
    return nodepool, workload_type_from_nodepool(nodepool)
