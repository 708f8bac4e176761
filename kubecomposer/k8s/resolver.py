"""Cross-reference lookups between resources.

ReferenceResolver answers the questions editors ask while a workload or
binding is being filled in: which ConfigMaps and Secrets exist in a
namespace, which keys a chosen object holds, which ServiceAccounts or roles
can be picked. It works on read-only snapshots of the project collections and
never raises for a dangling reference; unresolved lookups come back as a
ReferenceResolution with an empty key set.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from kubecomposer.k8s.constants import DEFAULT_SERVICE_ACCOUNT
from kubecomposer.k8s.models import (
    ClusterRole,
    ConfigMap,
    EnvVar,
    Role,
    RoleBinding,
    Secret,
    ServiceAccount,
)

logger = logging.getLogger(__name__)

# Resolution statuses
UNSET = "unset"                    # nothing chosen yet
RESOLVED = "resolved"              # object (and key, for env vars) found
MISSING_OBJECT = "missing-object"  # no such ConfigMap/Secret in the namespace
MISSING_KEY = "missing-key"        # object found but it has no such key


@dataclass(frozen=True)
class ReferenceResolution:
    """Outcome of resolving a ConfigMap/Secret reference.

    Attributes:
        status: One of UNSET, RESOLVED, MISSING_OBJECT, MISSING_KEY
        keys: Data keys of the referenced object, empty unless the object exists
    """

    status: str
    keys: Tuple[str, ...] = ()

    @property
    def is_resolved(self) -> bool:
        return self.status == RESOLVED


class ReferenceResolver:
    """Lookups over snapshots of the referenceable collections.

    Example:
        >>> resolver = ReferenceResolver(config_maps=[ConfigMap(name="app-config", namespace="default",
        ...     data=KeyValueMap.from_dict({"LOG_LEVEL": "info"}))])
        >>> resolver.data_keys("configMap", "default", "app-config").keys
        ('LOG_LEVEL',)
    """

    def __init__(
        self,
        config_maps: Iterable[ConfigMap] = (),
        secrets: Iterable[Secret] = (),
        service_accounts: Iterable[ServiceAccount] = (),
        roles: Iterable[Role] = (),
        cluster_roles: Iterable[ClusterRole] = (),
    ):
        self.config_maps = tuple(config_maps)
        self.secrets = tuple(secrets)
        self.service_accounts = tuple(service_accounts)
        self.roles = tuple(roles)
        self.cluster_roles = tuple(cluster_roles)

    def config_maps_in(self, namespace: str) -> List[ConfigMap]:
        return [cm for cm in self.config_maps if cm.namespace == namespace]

    def secrets_in(self, namespace: str) -> List[Secret]:
        return [secret for secret in self.secrets if secret.namespace == namespace]

    def _find_store(self, source_type: str, namespace: str, name: str) -> Optional[Union[ConfigMap, Secret]]:
        if source_type == "configMap":
            candidates = self.config_maps_in(namespace)
        elif source_type == "secret":
            candidates = self.secrets_in(namespace)
        else:
            logger.debug(f"Unknown env source type {source_type!r}")
            return None
        for store in candidates:
            if store.name == name:
                return store
        return None

    def data_keys(self, source_type: str, namespace: str, name: str) -> ReferenceResolution:
        """List the data keys of a ConfigMap or Secret.

        Args:
            source_type: "configMap" or "secret"
            namespace: Namespace the reference is made from
            name: Name of the ConfigMap/Secret, empty when not chosen yet

        Returns:
            UNSET when ``name`` is empty, MISSING_OBJECT when no such object
            exists in ``namespace``, otherwise RESOLVED with the object's keys
        """
        if not name:
            return ReferenceResolution(UNSET)
        store = self._find_store(source_type, namespace, name)
        if store is None:
            logger.debug(f"{source_type} {name!r} not found in namespace {namespace!r}")
            return ReferenceResolution(MISSING_OBJECT)
        return ReferenceResolution(RESOLVED, store.data.keys())

    def resolve_env_var(self, env: EnvVar, namespace: str) -> ReferenceResolution:
        """Resolve an env var's ``value_from`` against the workload's namespace.

        Literal env vars and references without a chosen object or key are
        UNSET. A chosen key the object does not hold is MISSING_KEY; the
        object's keys are still returned so a replacement can be offered.
        """
        source = env.value_from
        if source is None:
            return ReferenceResolution(UNSET)
        resolution = self.data_keys(source.type, namespace, source.name)
        if resolution.status != RESOLVED:
            return resolution
        if not source.key:
            return ReferenceResolution(UNSET, resolution.keys)
        if source.key not in resolution.keys:
            logger.debug(f"Key {source.key!r} not found in {source.type} {source.name!r}")
            return ReferenceResolution(MISSING_KEY, resolution.keys)
        return resolution

    def service_account_candidates(self, namespace: str) -> List[str]:
        """ServiceAccount names selectable in ``namespace``, ``default`` first.

        Every namespace has a ``default`` account, so it is always offered
        even when the project does not model it.
        """
        names = [DEFAULT_SERVICE_ACCOUNT]
        for account in self.service_accounts:
            if account.namespace == namespace and account.name not in names:
                names.append(account.name)
        return names

    def role_candidates(self, namespace: str) -> List[str]:
        return [role.name for role in self.roles if role.namespace == namespace]

    def cluster_role_candidates(self) -> List[str]:
        return [role.name for role in self.cluster_roles]

    def role_ref_candidates(self, binding: RoleBinding) -> List[str]:
        """Role names a binding's roleRef may point at for its current roleRef kind."""
        if binding.role_ref is None:
            return []
        if binding.role_ref.kind == "ClusterRole":
            return self.cluster_role_candidates()
        if binding.is_cluster_scoped:
            return []
        return self.role_candidates(binding.namespace)
