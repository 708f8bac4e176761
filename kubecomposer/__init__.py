"""
kubecomposer: Kubernetes manifest composer

Builds Kubernetes resource definitions (workloads, RBAC objects, config and
secret stores) from structured field values, validates them against naming,
scoping and reference rules, and renders them as manifest YAML.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
