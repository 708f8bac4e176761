"""Pure update operations for resource records.

Records are frozen, so every edit here returns a new record or a new tuple and
leaves its input untouched. The collection helpers work on any tuple; the
domain helpers wrap them for the nested lists the editors manipulate
(containers, env vars, volume mounts, rules, subjects, labels and data).

Example:
    >>> job = new_job(name="sync-job")
    >>> job = update_container(job, 0, name="sync", image="busybox")
    >>> job = duplicate_container(job, 0)
    >>> [c.name for c in job.containers]
    ['sync', 'sync-copy']
"""

import copy
import dataclasses
from typing import Any, Optional, Tuple, TypeVar

from kubecomposer.k8s.constants import COPY_SUFFIX
from kubecomposer.k8s.models import (
    Container,
    EnvVar,
    EnvVarSource,
    PolicyRule,
    RoleBinding,
    Subject,
    VolumeMount,
    new_container,
    new_subject,
)

T = TypeVar("T")


def with_fields(record: T, **changes: Any) -> T:
    """Return a copy of ``record`` with the given fields replaced."""
    return dataclasses.replace(record, **changes)


# ============================================================================
# Collection helpers
# ============================================================================


def append(items: Tuple[T, ...], item: T) -> Tuple[T, ...]:
    return tuple(items) + (item,)


def remove_at(items: Tuple[T, ...], index: int) -> Tuple[T, ...]:
    """Drop the element at ``index``; an out-of-range index leaves ``items`` as is."""
    return tuple(item for i, item in enumerate(items) if i != index)


def replace_at(items: Tuple[T, ...], index: int, item: T) -> Tuple[T, ...]:
    if not 0 <= index < len(items):
        raise IndexError(f"index {index} out of range for {len(items)} items")
    return tuple(item if i == index else existing for i, existing in enumerate(items))


def duplicate_at(items: Tuple[T, ...], index: int) -> Tuple[T, ...]:
    """Insert a deep copy of ``items[index]`` right after it.

    Records with a ``name`` get the copy suffix appended; an empty name stays
    empty so the user has to choose one.
    """
    source = items[index]
    duplicate = copy.deepcopy(source)
    if dataclasses.is_dataclass(duplicate) and hasattr(duplicate, "name"):
        name = duplicate.name
        duplicate = dataclasses.replace(duplicate, name=f"{name}{COPY_SUFFIX}" if name else "")
    return tuple(items[: index + 1]) + (duplicate,) + tuple(items[index + 1:])


def upsert(items: Tuple[T, ...], item: T, editing_index: Optional[int] = None) -> Tuple[T, ...]:
    """Save ``item``: replace the entry being edited, or append a new one."""
    if editing_index is None:
        return append(items, item)
    return replace_at(items, editing_index, item)


# ============================================================================
# Containers
# ============================================================================


def add_container(workload: T, container: Optional[Container] = None) -> T:
    return with_fields(workload, containers=append(workload.containers, container or new_container()))


def remove_container(workload: T, index: int) -> T:
    return with_fields(workload, containers=remove_at(workload.containers, index))


def update_container(workload: T, index: int, **changes: Any) -> T:
    container = with_fields(workload.containers[index], **changes)
    return with_fields(workload, containers=replace_at(workload.containers, index, container))


def duplicate_container(workload: T, index: int) -> T:
    return with_fields(workload, containers=duplicate_at(workload.containers, index))


def set_requests(container: Container, cpu: Optional[str] = None, memory: Optional[str] = None) -> Container:
    requests = container.resources.requests
    requests = with_fields(
        requests,
        cpu=requests.cpu if cpu is None else cpu,
        memory=requests.memory if memory is None else memory,
    )
    return with_fields(container, resources=with_fields(container.resources, requests=requests))


def set_limits(container: Container, cpu: Optional[str] = None, memory: Optional[str] = None) -> Container:
    """Set container limits; pass an empty string to clear a limit."""
    limits = container.resources.limits
    limits = with_fields(
        limits,
        cpu=limits.cpu if cpu is None else cpu,
        memory=limits.memory if memory is None else memory,
    )
    return with_fields(container, resources=with_fields(container.resources, limits=limits))


# ============================================================================
# Environment variables and volume mounts
# ============================================================================


def add_env_var(container: Container, env: Optional[EnvVar] = None) -> Container:
    return with_fields(container, env=append(container.env, env or EnvVar()))


def remove_env_var(container: Container, index: int) -> Container:
    return with_fields(container, env=remove_at(container.env, index))


def update_env_var(container: Container, index: int, **changes: Any) -> Container:
    env = with_fields(container.env[index], **changes)
    return with_fields(container, env=replace_at(container.env, index, env))


def use_literal_value(env: EnvVar, value: str = "") -> EnvVar:
    """Switch an env var to a literal value, dropping any reference."""
    return EnvVar.literal(env.name, value)


def use_reference(env: EnvVar, source_type: str, source_name: str = "", key: str = "") -> EnvVar:
    """Switch an env var to a ConfigMap/Secret reference, dropping any literal value."""
    return EnvVar(name=env.name, value=None, value_from=EnvVarSource(source_type, source_name, key))


def add_volume_mount(container: Container, mount: Optional[VolumeMount] = None) -> Container:
    return with_fields(container, volume_mounts=append(container.volume_mounts, mount or VolumeMount()))


def remove_volume_mount(container: Container, index: int) -> Container:
    return with_fields(container, volume_mounts=remove_at(container.volume_mounts, index))


def update_volume_mount(container: Container, index: int, **changes: Any) -> Container:
    mount = with_fields(container.volume_mounts[index], **changes)
    return with_fields(container, volume_mounts=replace_at(container.volume_mounts, index, mount))


# ============================================================================
# RBAC rules and subjects
# ============================================================================


def add_rule(role: T, rule: Optional[PolicyRule] = None) -> T:
    return with_fields(role, rules=append(role.rules, rule or PolicyRule()))


def remove_rule(role: T, index: int) -> T:
    return with_fields(role, rules=remove_at(role.rules, index))


def update_rule(role: T, index: int, **changes: Any) -> T:
    rule = with_fields(role.rules[index], **changes)
    return with_fields(role, rules=replace_at(role.rules, index, rule))


def _toggle(values: Tuple[str, ...], value: str) -> Tuple[str, ...]:
    if value in values:
        return tuple(v for v in values if v != value)
    return values + (value,)


def toggle_verb(rule: PolicyRule, verb: str) -> PolicyRule:
    return with_fields(rule, verbs=_toggle(rule.verbs, verb))


def toggle_resource(rule: PolicyRule, resource: str) -> PolicyRule:
    return with_fields(rule, resources=_toggle(rule.resources, resource))


def with_subject_kind(subject: Subject, kind: str) -> Subject:
    """Change a subject's kind, resetting name and namespace like the editor.

    ServiceAccount subjects become the ``default`` account with a namespace
    still to be chosen; User and Group subjects get a blank name and no
    namespace.
    """
    if kind == subject.kind:
        return subject
    return new_subject(kind)


def add_subject(binding: RoleBinding, subject: Optional[Subject] = None) -> RoleBinding:
    return with_fields(binding, subjects=append(binding.subjects, subject or new_subject()))


def remove_subject(binding: RoleBinding, index: int) -> RoleBinding:
    return with_fields(binding, subjects=remove_at(binding.subjects, index))


def update_subject(binding: RoleBinding, index: int, **changes: Any) -> RoleBinding:
    """Update one subject; a ``kind`` change resets it before other changes apply."""
    subject = binding.subjects[index]
    kind = changes.pop("kind", None)
    if kind is not None and kind != subject.kind:
        subject = with_subject_kind(subject, kind)
    subject = with_fields(subject, **changes)
    return with_fields(binding, subjects=replace_at(binding.subjects, index, subject))


def set_cluster_scoped(binding: RoleBinding, cluster_scoped: bool) -> RoleBinding:
    """Switch between RoleBinding and ClusterRoleBinding.

    A ClusterRoleBinding has no namespace, so switching to cluster scope
    clears it.
    """
    if cluster_scoped:
        return with_fields(binding, is_cluster_scoped=True, namespace="")
    return with_fields(binding, is_cluster_scoped=False)


# ============================================================================
# Labels and data
# ============================================================================


def set_label(record: T, key: str, value: str) -> T:
    return with_fields(record, labels=record.labels.set(key, value))


def remove_label(record: T, key: str) -> T:
    return with_fields(record, labels=record.labels.remove(key))


def rename_label(record: T, old_key: str, new_key: str) -> T:
    return with_fields(record, labels=record.labels.rename(old_key, new_key))


def set_data(record: T, key: str, value: str) -> T:
    return with_fields(record, data=record.data.set(key, value))


def remove_data_key(record: T, key: str) -> T:
    return with_fields(record, data=record.data.remove(key))


def rename_data_key(record: T, old_key: str, new_key: str) -> T:
    return with_fields(record, data=record.data.rename(old_key, new_key))
