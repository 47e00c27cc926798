"""Exception hierarchy for the atlantis workload affinity scripts.

These exceptions give the kubectl and nodepool helpers a domain-specific
error surface so the batch coordinators can catch a single base error when
a deployment should be skipped rather than abort the run.

Examples
--------
>>> raise KubectlCommandError("kubectl patch failed")
"""

from __future__ import annotations


class AffinityToolError(Exception):
    """Base error for the workload affinity helpers.

    Parameters
    ----------
    message
        Human-readable error message describing the failure.

    Examples
    --------
    >>> raise AffinityToolError("unexpected affinity failure")
    """


class KubectlCommandError(AffinityToolError):
    """Raised when a kubectl invocation fails or returns unusable output.

    Parameters
    ----------
    message
        Human-readable error message, including kubectl's stderr when
        available.

    Examples
    --------
    >>> raise KubectlCommandError("kubectl get deployment failed: NotFound")
    """


class NodepoolConfigError(AffinityToolError):
    """Raised when an atlantis variables file cannot be parsed.

    Examples
    --------
    >>> raise NodepoolConfigError("atlantis-billing/onx-daily.tfvars: bad HCL")
    """
