"""Cluster and namespace targeting shared by the batch scripts.

Each environment maps to the ``onx-<environment>`` GCP project and two
regional clusters whose kubectl contexts are named ``<environment>-central1``
and ``<environment>-west1``. System namespaces are left alone unless a
single deployment is targeted explicitly.

Examples
--------
>>> cluster_contexts("daily")
('daily-central1', 'daily-west1')
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

from atlantis_scripts._affinity_models import DeploymentRef
from atlantis_scripts._kubectl import context_exists, list_contexts, list_deployments

SYSTEM_NAMESPACES = (
    "kube-system",
    "kube-public",
    "kube-node-lease",
    "gke-system",
    "gke-managed-system",
    "istio-system",
    "gmp-system",
    "gmp-public",
    "config-management-system",
    "resource-group-system",
)
CLUSTER_REGIONS = ("central1", "west1")
RULE = "=" * 41


def gcp_project(environment: str) -> str:
    return f"onx-{environment}"


def cluster_contexts(environment: str) -> tuple[str, ...]:
    """Return kubectl contexts for *environment*, in processing order."""
    return tuple(f"{environment}-{region}" for region in CLUSTER_REGIONS)


def is_system_namespace(namespace: str) -> bool:
    return namespace in SYSTEM_NAMESPACES


def confirm(question: str, prompt: Callable[[str], str] | None = None) -> bool:
    """Ask a yes/no question; anything but ``y``/``Y`` declines."""
    reply = (prompt or input)(f"{question} (y/N): ")
    return reply.strip()[:1] in ("y", "Y")


def print_header(
    title: str,
    environment: str,
    *,
    dry_run: bool,
    dry_run_note: str,
    atlantis_path: Path | None = None,
    target: tuple[str, str] | None = None,
) -> None:
    print(f"=== {title} ===")
    print(f"Environment: {environment}")
    print(f"GCP Project: {gcp_project(environment)}")
    print(f"Clusters: {' '.join(cluster_contexts(environment))}")
    if atlantis_path is not None:
        print(f"Atlantis Repos Path: {atlantis_path}")
    if target is not None:
        print(f"Target: {target[0]}/{target[1]} (single deployment mode)")
    if dry_run:
        print(f"Mode: DRY RUN ({dry_run_note})")
    else:
        print("Mode: LIVE (changes will be applied)")
    print("")


def print_cluster_banner(context: str) -> None:
    print("")
    print(RULE)
    print(f"Processing cluster: {context}")
    print(RULE)
    print(f"Using kubectl context: {context}")


def ensure_context(context: str) -> bool:
    """Report and return ``False`` when *context* is not in the kubeconfig."""
    if context_exists(context):
        return True
    print(f"Error: kubectl context '{context}' not found")
    print("Available contexts:")
    for name in list_contexts():
        print(name)
    return False


def iter_deployments(
    context: str,
    target: tuple[str, str] | None = None,
    *,
    announce_skips: bool = True,
) -> Iterator[DeploymentRef]:
    """Yield Deployments to process in *context*.

    Parameters
    ----------
    context : str
        kubectl context naming the cluster.
    target : tuple[str, str] | None, optional
        ``(namespace, deployment)`` to process exclusively; bypasses the
        system namespace denylist.
    announce_skips : bool, optional
        Print a line for each skipped system namespace Deployment.
    """
    for namespace, name in list_deployments(context):
        if target is not None:
            if (namespace, name) == target:
                yield DeploymentRef(context, namespace, name)
            continue
        if is_system_namespace(namespace):
            if announce_skips:
                print(f"Skipping system namespace {namespace}")
            continue
        yield DeploymentRef(context, namespace, name)


def print_listing(heading: str, entries: list[str]) -> None:
    if not entries:
        return
    print(f"  {heading}:")
    for entry in entries:
        print(f"    - {entry}")


def print_footer() -> None:
    print("")
    print(RULE)
    print("All clusters processed successfully!")
    print(RULE)
