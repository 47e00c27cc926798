from __future__ import annotations

import copy
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import pytest

from atlantis_scripts._affinity_errors import KubectlCommandError


def pytest_configure() -> None:
    project_root = Path(__file__).resolve().parents[2]
    if str(project_root) not in sys.path:
        sys.path.insert(0, str(project_root))


def make_deployment(
    namespace: str,
    name: str,
    *,
    workload_type: str | None = None,
    toleration: str | None = None,
    spot_preference: bool = False,
    spot_toleration: bool = False,
    extra_tolerations: tuple[dict[str, Any], ...] = (),
) -> dict[str, Any]:
    node_affinity: dict[str, Any] = {}
    if workload_type is not None:
        node_affinity["requiredDuringSchedulingIgnoredDuringExecution"] = {
            "nodeSelectorTerms": [
                {
                    "matchExpressions": [
                        {"key": "workload-type", "operator": "In", "values": [workload_type]}
                    ]
                }
            ]
        }
    if spot_preference:
        node_affinity["preferredDuringSchedulingIgnoredDuringExecution"] = [
            {
                "weight": 100,
                "preference": {
                    "matchExpressions": [
                        {
                            "key": "cloud.google.com/gke-provisioning",
                            "operator": "In",
                            "values": ["spot"],
                        }
                    ]
                },
            }
        ]
    tolerations: list[dict[str, Any]] = []
    if toleration is not None:
        tolerations.append({"key": "workload-type", "operator": "Equal", "value": toleration})
    tolerations.extend(extra_tolerations)
    if spot_toleration:
        tolerations.append(
            {
                "key": "cloud.google.com/gke-spot",
                "operator": "Equal",
                "value": "true",
                "effect": "NoSchedule",
            }
        )
    pod_spec: dict[str, Any] = {"containers": [{"name": name, "image": "app:1"}]}
    if node_affinity:
        pod_spec["affinity"] = {"nodeAffinity": node_affinity}
    if tolerations:
        pod_spec["tolerations"] = tolerations
    return {
        "metadata": {"namespace": namespace, "name": name},
        "spec": {"template": {"spec": pod_spec}},
    }


@dataclass
class FakeCluster:
    """In-memory stand-in for the kubectl helpers."""

    deployments: dict[str, dict[tuple[str, str], dict[str, Any]]] = field(default_factory=dict)
    patches: list[tuple[str, str, str, dict[str, Any]]] = field(default_factory=list)
    rollouts: list[tuple[str, str, str]] = field(default_factory=list)
    rejected_patches: set[str] = field(default_factory=set)
    failed_rollouts: set[str] = field(default_factory=set)
    unreadable: set[str] = field(default_factory=set)

    def add_context(self, context: str) -> None:
        self.deployments.setdefault(context, {})

    def add(self, context: str, namespace: str, name: str, **facets: Any) -> None:
        self.add_context(context)
        self.deployments[context][(namespace, name)] = make_deployment(namespace, name, **facets)

    def context_exists(self, context: str) -> bool:
        return context in self.deployments

    def list_contexts(self) -> list[str]:
        return sorted(self.deployments)

    def namespace_exists(self, context: str, namespace: str) -> bool:
        return any(ns == namespace for ns, _ in self.deployments.get(context, {}))

    def list_deployments(self, context: str, namespace: str | None = None) -> list[tuple[str, str]]:
        return [
            key
            for key in self.deployments.get(context, {})
            if namespace is None or key[0] == namespace
        ]

    def get_deployment(self, context: str, namespace: str, name: str) -> dict[str, Any]:
        if f"{namespace}/{name}" in self.unreadable:
            raise KubectlCommandError(f"kubectl get deployment {name} failed: Forbidden")
        try:
            return copy.deepcopy(self.deployments[context][(namespace, name)])
        except KeyError as exc:
            raise KubectlCommandError(f"deployment {name} not found") from exc

    def patch_deployment(
        self,
        context: str,
        namespace: str,
        name: str,
        patch: dict[str, Any],
        *,
        scratch_dir: Path | None = None,
    ) -> None:
        if f"{namespace}/{name}" in self.rejected_patches:
            raise KubectlCommandError(f"kubectl patch deployment {name} failed: denied")
        self.patches.append((context, namespace, name, copy.deepcopy(patch)))
        pod_spec = self.deployments[context][(namespace, name)]["spec"]["template"]["spec"]
        patch_spec = patch["spec"]["template"]["spec"]
        if "affinity" in patch_spec:
            node_affinity = pod_spec.setdefault("affinity", {}).setdefault("nodeAffinity", {})
            node_affinity.update(copy.deepcopy(patch_spec["affinity"]["nodeAffinity"]))
        pod_spec["tolerations"] = copy.deepcopy(patch_spec["tolerations"])

    def run_kubectl(self, *args: str, options: Any = None) -> str:
        if args[:2] != ("rollout", "status"):
            raise AssertionError(f"unexpected kubectl call: {args}")
        name = args[3]
        namespace = args[args.index("-n") + 1]
        self.rollouts.append((options.context, namespace, name))
        if f"{namespace}/{name}" in self.failed_rollouts:
            raise KubectlCommandError("rollout did not complete")
        return ""


@pytest.fixture
def fake_cluster(monkeypatch: pytest.MonkeyPatch) -> FakeCluster:
    """Route every kubectl helper the scripts import to an in-memory cluster."""
    cluster = FakeCluster()
    bindings = {
        "atlantis_scripts._cluster_targets.context_exists": cluster.context_exists,
        "atlantis_scripts._cluster_targets.list_contexts": cluster.list_contexts,
        "atlantis_scripts._cluster_targets.list_deployments": cluster.list_deployments,
        "atlantis_scripts._affinity_inspect.get_deployment": cluster.get_deployment,
        "atlantis_scripts._affinity_batch.patch_deployment": cluster.patch_deployment,
        "atlantis_scripts.add_spot_tolerations.patch_deployment": cluster.patch_deployment,
        "atlantis_scripts.show_workload_types.context_exists": cluster.context_exists,
        "atlantis_scripts.remove_system_node_affinity.namespace_exists": cluster.namespace_exists,
        "atlantis_scripts.remove_system_node_affinity.list_deployments": cluster.list_deployments,
        "atlantis_scripts.remove_system_node_affinity.patch_deployment": cluster.patch_deployment,
        "atlantis_scripts._kubectl.run_kubectl": cluster.run_kubectl,
    }
    for target, replacement in bindings.items():
        monkeypatch.setattr(target, replacement)
    for key in (
        "ATLANTIS_PATH",
        "ROLLOUT_TIMEOUT_SECONDS",
        "ROLLOUT_BATCH_SIZE",
        "ROLLOUT_BATCH_PAUSE_SECONDS",
    ):
        monkeypatch.delenv(key, raising=False)
    return cluster


@pytest.fixture
def no_input(monkeypatch: pytest.MonkeyPatch) -> list[str]:
    """Answer ``input`` prompts with Enter and record the prompts."""
    prompts: list[str] = []

    def fake_input(prompt: str = "") -> str:
        prompts.append(prompt)
        return ""

    monkeypatch.setattr("builtins.input", fake_input)
    return prompts
