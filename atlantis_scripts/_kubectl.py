"""kubectl helpers for reading and patching Deployments.

Every call runs ``kubectl --context=<context> ...`` through plumbum and maps
failures onto :class:`KubectlCommandError` so callers can skip a deployment
without aborting the batch.

Example: ``list_deployments("daily-central1")`` returns pairs such as
``("billing", "api")`` in the order kubectl lists them.
"""

from __future__ import annotations

import json
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from plumbum import local
from plumbum.commands.processes import (
    CommandNotFound,
    ProcessExecutionError,
    ProcessTimedOut,
)

from atlantis_scripts._affinity_errors import KubectlCommandError

KUBECTL_TIMEOUT_SECONDS = 120
DEFAULT_ROLLOUT_TIMEOUT_SECONDS = 300


@dataclass(slots=True)
class KubectlContext:
    """Execution options for :func:`run_kubectl`."""

    context: str | None = None
    timeout: int | None = KUBECTL_TIMEOUT_SECONDS


def _validate_kubectl_args(args: tuple[str, ...]) -> None:
    for arg in args:
        if not isinstance(arg, str):
            msg = f"kubectl argument must be a string, got {type(arg).__name__}"
            raise TypeError(msg)
        if any(char in arg for char in ("\x00", "\n", "\r")):
            msg = "kubectl argument contains an invalid control character"
            raise ValueError(msg)


def run_kubectl(*args: str, options: KubectlContext | None = None) -> str:
    """Execute kubectl and return its standard output.

    Parameters
    ----------
    *args : str
        kubectl arguments, without the ``--context`` flag.
    options : KubectlContext | None, optional
        Target context and timeout.

    Returns
    -------
    str
        Captured stdout.

    Raises
    ------
    KubectlCommandError
        When kubectl is missing, exits non-zero or times out.
    """
    opts = options or KubectlContext()
    argv = (f"--context={opts.context}", *args) if opts.context else args
    _validate_kubectl_args(argv)
    try:
        _, stdout, _ = local["kubectl"][list(argv)].run(timeout=opts.timeout)
    except CommandNotFound as exc:
        raise KubectlCommandError("kubectl not found on PATH") from exc
    except ProcessTimedOut as exc:
        msg = f"kubectl {' '.join(args)} timed out after {opts.timeout}s"
        raise KubectlCommandError(msg) from exc
    except ProcessExecutionError as exc:
        msg = f"kubectl {' '.join(args)} failed: {exc.stderr.strip()}"
        raise KubectlCommandError(msg) from exc
    return stdout


def _run_json(context: str, *args: str) -> Any:
    stdout = run_kubectl(*args, "-o", "json", options=KubectlContext(context=context))
    try:
        return json.loads(stdout)
    except json.JSONDecodeError as exc:
        msg = f"kubectl {' '.join(args)} returned invalid JSON: {exc}"
        raise KubectlCommandError(msg) from exc


def context_exists(context: str) -> bool:
    """Return whether *context* is defined in the active kubeconfig."""
    try:
        run_kubectl("config", "get-contexts", context)
    except KubectlCommandError:
        return False
    return True


def list_contexts() -> list[str]:
    """Return the context names defined in the active kubeconfig."""
    stdout = run_kubectl("config", "get-contexts", "-o", "name")
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def namespace_exists(context: str, namespace: str) -> bool:
    """Return whether *namespace* exists in the cluster behind *context*."""
    try:
        run_kubectl("get", "namespace", namespace, options=KubectlContext(context=context))
    except KubectlCommandError:
        return False
    return True


def list_deployments(context: str, namespace: str | None = None) -> list[tuple[str, str]]:
    """List ``(namespace, name)`` pairs in the order kubectl returns them.

    Parameters
    ----------
    context : str
        kubectl context naming the cluster.
    namespace : str | None, optional
        Restrict the listing to one namespace; all namespaces when omitted.
    """
    scope = ("-n", namespace) if namespace else ("--all-namespaces",)
    payload = _run_json(context, "get", "deployments", *scope)
    items = payload.get("items", []) if isinstance(payload, Mapping) else []
    pairs: list[tuple[str, str]] = []
    for item in items:
        metadata = item.get("metadata", {})
        name = metadata.get("name")
        if not name:
            continue
        pairs.append((metadata.get("namespace", namespace or "default"), name))
    return pairs


def get_deployment(context: str, namespace: str, name: str) -> dict[str, Any]:
    """Return the Deployment object as parsed JSON."""
    payload = _run_json(context, "get", "deployment", name, "-n", namespace)
    if not isinstance(payload, dict):
        msg = f"kubectl get deployment {namespace}/{name} did not return an object"
        raise KubectlCommandError(msg)
    return payload


def patch_deployment(
    context: str,
    namespace: str,
    name: str,
    patch: Mapping[str, Any],
    *,
    scratch_dir: Path | None = None,
) -> None:
    """Apply a strategic merge patch to a Deployment.

    The patch is serialized once to a YAML patch file, which kubectl reads
    via ``--patch-file``; the file is removed afterwards.

    Raises
    ------
    KubectlCommandError
        When kubectl rejects the patch.
    """
    with tempfile.NamedTemporaryFile(
        mode="w",
        suffix=".yaml",
        prefix=f"affinity-patch-{context}-",
        dir=scratch_dir,
        delete=False,
        encoding="utf-8",
    ) as handle:
        yaml.safe_dump(dict(patch), handle, sort_keys=False)
        patch_path = Path(handle.name)
    try:
        run_kubectl(
            "patch",
            "deployment",
            name,
            "-n",
            namespace,
            "--type=strategic",
            "--patch-file",
            str(patch_path),
            options=KubectlContext(context=context),
        )
    finally:
        patch_path.unlink(missing_ok=True)


def rollout_status(
    context: str,
    namespace: str,
    name: str,
    timeout: int = DEFAULT_ROLLOUT_TIMEOUT_SECONDS,
) -> bool:
    """Block until the Deployment rollout completes; return ``False`` on failure."""
    try:
        run_kubectl(
            "rollout",
            "status",
            "deployment",
            name,
            "-n",
            namespace,
            f"--timeout={timeout}s",
            # kubectl enforces the rollout bound; leave headroom for the process.
            options=KubectlContext(context=context, timeout=timeout + 30),
        )
    except KubectlCommandError:
        return False
    return True
