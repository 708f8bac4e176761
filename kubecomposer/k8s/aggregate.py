"""Whole-project consistency checks.

check_project runs the per-kind validators over the project settings and
every collection of a project, each entry validated against the rest of the
project, and folds the results into one ProjectReport. save_resource backs
the editors' save action: it validates a record in the context of the
project and only stores it when it is valid.
"""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from kubecomposer.core.errors import ContractError
from kubecomposer.core.schema import Violation, violations_from_errors
from kubecomposer.k8s.edits import upsert
from kubecomposer.k8s.models import PROJECT_COLLECTIONS, Project
from kubecomposer.k8s.validators import ValidationContext, validate

logger = logging.getLogger(__name__)

_COLLECTION_TYPES = dict(PROJECT_COLLECTIONS)


@dataclass(frozen=True)
class ProjectReport:
    """Result of checking a whole project.

    Attributes:
        valid: True iff every record's error map is empty
        errors: Collection name -> one error map per record, in collection order.
            "settings" holds the single error map of the project settings.
        violations: All errors flattened, e.g. id "jobs[0].container-image-0"
        resource_count: Advisory count of Kubernetes objects the project yields
    """

    valid: bool
    errors: Dict[str, List[Dict[str, str]]]
    violations: List[Violation]
    resource_count: int


def count_resources(project: Project) -> int:
    """Count the Kubernetes objects a project produces.

    Every record counts once, except:
    - a Deployment with an app name yields a Deployment and a Service (2),
      plus an Ingress when enabled
    - a DaemonSet with an app name counts 1, plus a Service when enabled
    - Deployments and DaemonSets without an app name count 0
    """
    count = 0
    for collection, _ in PROJECT_COLLECTIONS:
        if collection in ("deployments", "daemon_sets"):
            continue
        count += len(getattr(project, collection))
    for deployment in project.deployments:
        if deployment.app_name:
            count += 2 + (1 if deployment.ingress_enabled else 0)
    for daemon_set in project.daemon_sets:
        if daemon_set.app_name:
            count += 1 + (1 if daemon_set.service_enabled else 0)
    return count


def check_project(project: Project) -> ProjectReport:
    """Validate every record of a project.

    Raises:
        ContractError: If a collection holds a RoleBinding without a roleRef
            or a record of the wrong type
    """
    context = ValidationContext.for_project(project)
    settings_errors = validate(project.settings, context)
    errors: Dict[str, List[Dict[str, str]]] = {"settings": [settings_errors]}
    violations: List[Violation] = violations_from_errors("settings", 0, settings_errors)
    for collection, _ in PROJECT_COLLECTIONS:
        collection_errors = []
        for index, instance in enumerate(getattr(project, collection)):
            instance_errors = validate(instance, context.editing(index))
            collection_errors.append(instance_errors)
            violations.extend(violations_from_errors(collection, index, instance_errors))
        errors[collection] = collection_errors

    report = ProjectReport(
        valid=not violations,
        errors=errors,
        violations=violations,
        resource_count=count_resources(project),
    )
    logger.debug(f"Checked project: {len(violations)} violation(s), {report.resource_count} resource(s)")
    return report


def save_resource(
    project: Project, collection: str, instance, editing_index: Optional[int] = None
) -> Tuple[Project, Dict[str, str]]:
    """Validate a record and store it in a project collection when valid.

    Args:
        project: Current project snapshot
        collection: Project field name, e.g. "jobs" or "role_bindings"
        instance: Record to save
        editing_index: Index of the entry being edited, None to append a new one

    Returns:
        (new project, {}) when the record is valid, otherwise
        (unchanged project, error map)

    Raises:
        ContractError: If the collection is unknown or does not hold
            records of this type
    """
    expected_type = _COLLECTION_TYPES.get(collection)
    if expected_type is None:
        raise ContractError(f"Unknown project collection: {collection}", resource=instance)
    if type(instance) is not expected_type:
        raise ContractError(
            f"Collection {collection} holds {expected_type.__name__}, not {type(instance).__name__}",
            resource=instance,
        )

    errors = validate(instance, ValidationContext.for_project(project, editing_index))
    if errors:
        logger.debug(f"Not saving {expected_type.__name__} into {collection}: {len(errors)} error(s)")
        return project, errors
    items = upsert(getattr(project, collection), instance, editing_index)
    return replace(project, **{collection: items}), errors
