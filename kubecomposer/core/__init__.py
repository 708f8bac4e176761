"""
Core domain-agnostic components for kubecomposer.

This package contains configuration loading, the exception types and the
violation/validator schemas shared by the Kubernetes modules.
"""

__all__ = []
