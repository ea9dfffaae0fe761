"""Read-only catalog of pod-template workloads (Deployments and StatefulSets)."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Set, Tuple

from kubernetes import client

from .config import (
    DEPLOYMENT_KIND,
    EXCLUDE_CONTAINERS_ANNOTATION,
    LIST_PAGE_SIZE,
    STATEFULSET_KIND,
    WORKLOAD_API_VERSION,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContainerSpec:
    """A container of a workload's pod template."""
    name: str
    requests: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class WorkloadRef:
    """Snapshot of a workload taken when the catalog was built."""
    api_version: str
    kind: str
    namespace: str
    name: str
    labels: Dict[str, str] = field(default_factory=dict)
    annotations: Dict[str, str] = field(default_factory=dict)
    containers: Tuple[ContainerSpec, ...] = ()

    @property
    def autoscaler_name(self) -> str:
        """Name of the VPA for this workload: <workload-name>-<workload-kind>."""
        return f"{self.name}-{self.kind.lower()}"

    @property
    def target_key(self) -> Tuple[str, str, str]:
        return (self.api_version, self.kind, self.name)

    @property
    def excluded_containers(self) -> Set[str]:
        """Containers listed in the exclusion annotation."""
        value = self.annotations.get(EXCLUDE_CONTAINERS_ANNOTATION, "")
        return {name.strip() for name in value.split(",") if name.strip()}

    def get_container(self, name: str) -> Optional[ContainerSpec]:
        for container in self.containers:
            if container.name == name:
                return container
        return None

    @classmethod
    def from_object(cls, obj, kind: str, api_version: str = WORKLOAD_API_VERSION) -> "WorkloadRef":
        """
        Build a WorkloadRef from a V1Deployment or V1StatefulSet.

        Items returned by list calls carry no kind/apiVersion, so both are
        supplied by the caller.
        """
        metadata = obj.metadata
        containers = []
        try:
            pod_containers = obj.spec.template.spec.containers or []
        except AttributeError:
            pod_containers = []

        for container in pod_containers:
            resources = container.resources
            containers.append(ContainerSpec(
                name=container.name,
                requests={k: str(v) for k, v in ((resources and resources.requests) or {}).items()},
                limits={k: str(v) for k, v in ((resources and resources.limits) or {}).items()},
            ))

        return cls(
            api_version=api_version,
            kind=kind,
            namespace=metadata.namespace,
            name=metadata.name,
            labels=dict(metadata.labels or {}),
            annotations=dict(metadata.annotations or {}),
            containers=tuple(containers),
        )


class WorkloadCatalog:
    """Lists the workloads VPAs can target."""

    def __init__(self, apps_api: Optional[client.AppsV1Api] = None):
        """
        Initialize the catalog.

        Args:
            apps_api: AppsV1Api to read from (a default one is built if omitted)
        """
        self.apps_api = apps_api or client.AppsV1Api()

    def list_workloads(self, namespace: str = "") -> List[WorkloadRef]:
        """
        List all Deployments followed by all StatefulSets.

        Args:
            namespace: Namespace to list from ("" for all namespaces)

        Returns:
            List of WorkloadRef objects

        Raises:
            ApiException: if any list call fails; no partial catalog is returned
        """
        if namespace:
            list_deployments = self._namespaced(self.apps_api.list_namespaced_deployment, namespace)
            list_stateful_sets = self._namespaced(self.apps_api.list_namespaced_stateful_set, namespace)
        else:
            list_deployments = self.apps_api.list_deployment_for_all_namespaces
            list_stateful_sets = self.apps_api.list_stateful_set_for_all_namespaces

        workloads = [
            WorkloadRef.from_object(item, DEPLOYMENT_KIND)
            for item in self._list_all(list_deployments)
        ]
        workloads.extend(
            WorkloadRef.from_object(item, STATEFULSET_KIND)
            for item in self._list_all(list_stateful_sets)
        )

        logger.debug(f"There are {len(workloads)} workloads in {namespace or 'all namespaces'}")
        for workload in workloads:
            logger.debug(f"Found {workload.kind}/{workload.name} in Namespace/{workload.namespace}")

        return workloads

    @staticmethod
    def _namespaced(list_call: Callable, namespace: str) -> Callable:
        def call(**kwargs):
            return list_call(namespace, **kwargs)
        return call

    @staticmethod
    def _list_all(list_call: Callable) -> list:
        """Follow continue tokens until every page has been read."""
        items = []
        token = None

        while True:
            kwargs = {"limit": LIST_PAGE_SIZE}
            if token:
                kwargs["_continue"] = token
            response = list_call(**kwargs)
            items.extend(response.items or [])

            token = getattr(response.metadata, "_continue", None) if response.metadata else None
            if not token:
                return items
