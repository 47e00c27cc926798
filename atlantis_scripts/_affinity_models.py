"""Data models shared by the workload affinity scripts.

These models keep the data flowing between the nodepool reader, the
inspector, the drift classifier and the coordinators explicit, replacing the
accumulating arrays a shell loop would keep.

Examples
--------
>>> ref = DeploymentRef(context="daily-central1", namespace="billing", name="api")
>>> ref.qualified_name
'billing/api'
"""

from __future__ import annotations

from dataclasses import dataclass, field

WORKLOAD_TYPE_KEY = "workload-type"
GKE_SPOT_KEY = "cloud.google.com/gke-spot"
GKE_PROVISIONING_KEY = "cloud.google.com/gke-provisioning"


@dataclass(frozen=True, slots=True)
class DeploymentRef:
    """Identity of a Deployment within a cluster.

    Attributes
    ----------
    context
        kubectl context naming the cluster.
    namespace
        Namespace of the Deployment; matches the ``atlantis-<namespace>``
        repository suffix.
    name
        Deployment name.
    """

    context: str
    namespace: str
    name: str

    @property
    def qualified_name(self) -> str:
        """Return ``namespace/name`` as printed in reports."""
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True, slots=True)
class ObservedAffinity:
    """Scheduling configuration read from a live Deployment.

    Attributes
    ----------
    affinity_workload_type
        First value of the required ``workload-type`` node affinity
        expression, ``""`` when the expression carries no values, or ``None``
        when it is absent.
    toleration_workload_type
        Value of the ``workload-type`` toleration, or ``None`` when absent.
    has_spot_affinity
        Whether the Deployment expresses a spot node preference.
    has_spot_toleration
        Whether the canonical GKE spot toleration is present.
    tolerations
        Raw toleration entries from the pod template.

    Examples
    --------
    >>> ObservedAffinity().has_workload_type_affinity
    False
    """

    affinity_workload_type: str | None = None
    toleration_workload_type: str | None = None
    has_spot_affinity: bool = False
    has_spot_toleration: bool = False
    tolerations: tuple[dict[str, object], ...] = ()

    @property
    def has_workload_type_affinity(self) -> bool:
        return self.affinity_workload_type is not None

    @property
    def has_workload_type_toleration(self) -> bool:
        return self.toleration_workload_type is not None


@dataclass(slots=True)
class ClusterSummary:
    """Per-cluster outcome of a batch run.

    Attributes
    ----------
    context
        kubectl context the summary belongs to.
    patched
        Deployments patched (or, in dry runs, that would be patched).
    skipped
        Deployments already configured correctly.
    failed
        Deployments whose read or patch failed.
    rollout_failures
        Deployments whose rollout did not complete within the timeout.
    without_spot_affinity
        Deployments ignored because they carry no spot preference.
    reachable
        ``False`` when the context was missing from the kubeconfig.
    """

    context: str
    patched: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    rollout_failures: list[str] = field(default_factory=list)
    without_spot_affinity: list[str] = field(default_factory=list)
    reachable: bool = True
