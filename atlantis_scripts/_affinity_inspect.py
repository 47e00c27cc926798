"""Read the live scheduling configuration of a Deployment."""

from __future__ import annotations

import logging
from collections.abc import Iterator, Mapping
from typing import Any

from atlantis_scripts._affinity_errors import KubectlCommandError
from atlantis_scripts._affinity_models import (
    GKE_PROVISIONING_KEY,
    GKE_SPOT_KEY,
    WORKLOAD_TYPE_KEY,
    DeploymentRef,
    ObservedAffinity,
)
from atlantis_scripts._kubectl import get_deployment

SPOT_VALUE = "spot"

logger = logging.getLogger(__name__)


def _pod_spec(deployment: Mapping[str, Any]) -> Mapping[str, Any]:
    spec = deployment.get("spec") or {}
    template = spec.get("template") or {}
    return template.get("spec") or {}


def _node_affinity(pod_spec: Mapping[str, Any]) -> Mapping[str, Any]:
    affinity = pod_spec.get("affinity") or {}
    return affinity.get("nodeAffinity") or {}


def _required_expressions(node_affinity: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    required = node_affinity.get("requiredDuringSchedulingIgnoredDuringExecution") or {}
    for term in required.get("nodeSelectorTerms") or []:
        yield from term.get("matchExpressions") or []


def _preferred_expressions(node_affinity: Mapping[str, Any]) -> Iterator[Mapping[str, Any]]:
    for entry in node_affinity.get("preferredDuringSchedulingIgnoredDuringExecution") or []:
        preference = entry.get("preference") or {}
        yield from preference.get("matchExpressions") or []


def _is_spot_hint(expression: Mapping[str, Any], *, preferred: bool) -> bool:
    key = expression.get("key")
    values = expression.get("values") or []
    if key in (GKE_PROVISIONING_KEY, WORKLOAD_TYPE_KEY):
        return SPOT_VALUE in values
    return preferred and key == GKE_SPOT_KEY


def is_spot_toleration(toleration: Mapping[str, Any]) -> bool:
    """Return whether *toleration* is the canonical GKE spot toleration.

    Examples
    --------
    >>> is_spot_toleration({"key": "cloud.google.com/gke-spot", "operator": "Equal",
    ...                     "value": "true", "effect": "NoSchedule"})
    True
    """
    return (
        toleration.get("key") == GKE_SPOT_KEY
        and toleration.get("operator") == "Equal"
        and toleration.get("value") == "true"
        and toleration.get("effect") == "NoSchedule"
    )


def inspect_deployment(deployment: Mapping[str, Any]) -> ObservedAffinity:
    """Extract the affinity and toleration facets from a Deployment object.

    Parameters
    ----------
    deployment : Mapping[str, Any]
        Deployment as returned by ``kubectl get deployment -o json``.

    Returns
    -------
    ObservedAffinity
        Observed workload-type values and spot facets.
    """
    pod_spec = _pod_spec(deployment)
    node_affinity = _node_affinity(pod_spec)

    affinity_workload_type: str | None = None
    for expression in _required_expressions(node_affinity):
        if expression.get("key") == WORKLOAD_TYPE_KEY:
            values = expression.get("values") or []
            affinity_workload_type = str(values[0]) if values else ""
            break

    tolerations = tuple(t for t in pod_spec.get("tolerations") or [] if isinstance(t, Mapping))
    toleration_workload_type: str | None = None
    for toleration in tolerations:
        if toleration.get("key") == WORKLOAD_TYPE_KEY:
            toleration_workload_type = str(toleration.get("value") or "")
            break

    has_spot_affinity = any(
        _is_spot_hint(expression, preferred=True)
        for expression in _preferred_expressions(node_affinity)
    ) or any(
        _is_spot_hint(expression, preferred=False)
        for expression in _required_expressions(node_affinity)
    )

    return ObservedAffinity(
        affinity_workload_type=affinity_workload_type,
        toleration_workload_type=toleration_workload_type,
        has_spot_affinity=has_spot_affinity,
        has_spot_toleration=any(is_spot_toleration(t) for t in tolerations),
        tolerations=tuple(dict(t) for t in tolerations),
    )


def observe_deployment(ref: DeploymentRef) -> ObservedAffinity | None:
    """Fetch and inspect a Deployment, returning ``None`` when it cannot be read."""
    try:
        deployment = get_deployment(ref.context, ref.namespace, ref.name)
    except KubectlCommandError as exc:
        logger.warning("Unable to read deployment %s: %s", ref.qualified_name, exc)
        return None
    return inspect_deployment(deployment)
