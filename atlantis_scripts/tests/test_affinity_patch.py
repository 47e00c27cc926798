"""Unit tests for patch construction."""

from __future__ import annotations

from atlantis_scripts._affinity_patch import (
    build_affinity_patch,
    build_spot_toleration_patch,
    build_system_cleanup_patch,
    spot_toleration,
)

SPOT = {
    "key": "cloud.google.com/gke-spot",
    "operator": "Equal",
    "value": "true",
    "effect": "NoSchedule",
}


def test_affinity_patch_document_shape() -> None:
    patch = build_affinity_patch("highmem").to_mapping()

    assert patch == {
        "spec": {
            "template": {
                "spec": {
                    "affinity": {
                        "nodeAffinity": {
                            "requiredDuringSchedulingIgnoredDuringExecution": {
                                "nodeSelectorTerms": [
                                    {
                                        "matchExpressions": [
                                            {
                                                "key": "workload-type",
                                                "operator": "In",
                                                "values": ["highmem"],
                                            }
                                        ]
                                    }
                                ]
                            }
                        }
                    },
                    "tolerations": [
                        {"key": "workload-type", "operator": "Equal", "value": "highmem"}
                    ],
                }
            }
        }
    }


def test_affinity_patch_replaces_stale_workload_type_and_keeps_others() -> None:
    custom = {"key": "dedicated", "operator": "Equal", "value": "batch", "effect": "NoSchedule"}
    existing = [
        {"key": "workload-type", "operator": "Equal", "value": "core"},
        custom,
        SPOT,
    ]

    patch = build_affinity_patch("gpu", existing_tolerations=existing)

    assert patch.requirement is not None and patch.requirement.values == ("gpu",)
    assert list(patch.tolerations) == [
        {"key": "workload-type", "operator": "Equal", "value": "gpu"},
        custom,
        SPOT,
    ]


def test_affinity_patch_adds_spot_toleration_once() -> None:
    loose_spot = {"key": "cloud.google.com/gke-spot", "operator": "Exists"}

    patch = build_affinity_patch(
        "gpu",
        include_spot_toleration=True,
        existing_tolerations=[{"key": "custom", "operator": "Exists"}, loose_spot],
    )

    assert [t["key"] for t in patch.tolerations] == [
        "workload-type",
        "custom",
        "cloud.google.com/gke-spot",
    ]
    assert patch.tolerations[-1] == spot_toleration()


def test_spot_toleration_patch_leaves_affinity_alone() -> None:
    existing = [{"key": "workload-type", "operator": "Equal", "value": "core"}]

    patch = build_spot_toleration_patch(existing).to_mapping()
    pod_spec = patch["spec"]["template"]["spec"]

    assert "affinity" not in pod_spec
    assert pod_spec["tolerations"] == [existing[0], SPOT]


def test_system_cleanup_patch() -> None:
    patch = build_system_cleanup_patch()
    pod_spec = patch.to_mapping()["spec"]["template"]["spec"]

    assert patch.requirement is not None and patch.requirement.key == "kubernetes.io/arch"
    assert pod_spec["tolerations"] == []
    expressions = pod_spec["affinity"]["nodeAffinity"][
        "requiredDuringSchedulingIgnoredDuringExecution"
    ]["nodeSelectorTerms"][0]["matchExpressions"]
    assert expressions == [{"key": "kubernetes.io/arch", "operator": "In", "values": ["amd64"]}]


def test_affinity_patch_moves_workload_type_entry_first() -> None:
    existing = [{"key": "custom"}, {"key": "workload-type", "value": "old"}]

    patch = build_affinity_patch("gpu", existing_tolerations=existing)

    assert list(patch.tolerations) == [
        {"key": "workload-type", "operator": "Equal", "value": "gpu"},
        {"key": "custom"},
    ]
