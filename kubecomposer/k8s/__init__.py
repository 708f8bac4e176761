"""Kubernetes resource composer.

This module provides the Kubernetes-specific pieces of kubecomposer:
- Resource model: frozen records for each supported kind plus pure edits
- Validators: per-kind field checks returning field-path -> message maps
- Resolver: ConfigMap/Secret/ServiceAccount/Role reference lookups
- Serializer: deterministic manifest YAML rendering
- Aggregate: project-wide verdict and resource counts
"""
