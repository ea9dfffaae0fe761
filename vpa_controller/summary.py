"""Summary of VPA recommendations by namespace, workload and container."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .vpa_client import ManagedAutoscaler, VPAClient
from .workloads import WorkloadCatalog, WorkloadRef
from .utils import format_resource_list

logger = logging.getLogger(__name__)

ALL_NAMESPACES = ""


@dataclass
class ContainerSummary:
    container_name: str
    lower_bound: Dict[str, str] = field(default_factory=dict)
    upper_bound: Dict[str, str] = field(default_factory=dict)
    target: Dict[str, str] = field(default_factory=dict)
    uncapped_target: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)
    requests: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "containerName": self.container_name,
            "lowerBound": self.lower_bound,
            "upperBound": self.upper_bound,
            "target": self.target,
            "uncappedTarget": self.uncapped_target,
            "limits": self.limits,
            "requests": self.requests,
        }


@dataclass
class WorkloadSummary:
    workload_name: str
    kind: str
    containers: Dict[str, ContainerSummary] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "workloadName": self.workload_name,
            "kind": self.kind,
            "containers": {name: c.to_dict() for name, c in self.containers.items()},
        }


@dataclass
class NamespaceSummary:
    namespace: str
    workloads: Dict[str, WorkloadSummary] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "workloads": {name: w.to_dict() for name, w in self.workloads.items()},
        }


@dataclass
class Summary:
    """Recommendation data keyed by namespace, then VPA name, then container."""
    namespaces: Dict[str, NamespaceSummary] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"namespaces": {name: ns.to_dict() for name, ns in self.namespaces.items()}}


class Summarizer:
    """
    Builds a Summary from owned VPAs and the workloads they target.

    VPAs and workloads are read once, on the first call to get_summary(),
    and reused afterwards. Call refresh() to read them again.
    """

    def __init__(
        self,
        vpa_client: VPAClient,
        workload_catalog: WorkloadCatalog,
        namespace: str = ALL_NAMESPACES,
        excluded_containers: Iterable[str] = (),
    ):
        """
        Initialize the summarizer.

        Args:
            vpa_client: Store for owned VPAs
            workload_catalog: Source of Deployments and StatefulSets
            namespace: Namespace to summarize ("" for all namespaces)
            excluded_containers: Container names left out of every workload
        """
        self.vpa_client = vpa_client
        self.workload_catalog = workload_catalog
        self.namespace = namespace
        self.excluded_containers = set(excluded_containers)

        self._vpas: Optional[List[ManagedAutoscaler]] = None
        self._workload_for_vpa_named: Optional[Dict[Tuple[str, str], WorkloadRef]] = None

    @classmethod
    def for_vpas(cls, vpas: List[ManagedAutoscaler], *args, **kwargs) -> "Summarizer":
        """Create a Summarizer for a known list of VPAs."""
        summarizer = cls(*args, **kwargs)
        summarizer._vpas = list(vpas)
        return summarizer

    def refresh(self) -> None:
        """Re-read VPAs and workloads."""
        self._update_vpas()
        self._update_workloads()

    def _update_vpas(self) -> None:
        logger.debug(f"Looking for VPAs in {self.namespace or 'all namespaces'}")
        self._vpas = self.vpa_client.list_owned(self.namespace)

    def _update_workloads(self) -> None:
        logger.debug(f"Looking for workloads in {self.namespace or 'all namespaces'}")
        workloads = self.workload_catalog.list_workloads(self.namespace)
        self._workload_for_vpa_named = {
            (workload.namespace, workload.autoscaler_name): workload for workload in workloads
        }

    def _ensure_loaded(self) -> None:
        if self._vpas is None:
            self._update_vpas()
        if self._workload_for_vpa_named is None:
            self._update_workloads()

    def get_summary(self) -> Summary:
        """
        Build the summary.

        Raises:
            ApiException: if VPAs or workloads cannot be read
        """
        summary = Summary()

        # A single-namespace summary always lists that namespace
        if self.namespace != ALL_NAMESPACES:
            summary.namespaces[self.namespace] = NamespaceSummary(namespace=self.namespace)

        self._ensure_loaded()

        for vpa in self._vpas:
            logger.debug(f"Analyzing VPA/{vpa.name}")

            ns_summary = summary.namespaces.setdefault(vpa.namespace, NamespaceSummary(namespace=vpa.namespace))
            workload = self._workload_for_vpa_named.get((vpa.namespace, vpa.name))
            if workload is None:
                logger.error(f"No matching workload found for VPA/{vpa.name} in Namespace/{vpa.namespace}")
                continue

            ns_summary.workloads[vpa.name] = self._summarize_workload(vpa, workload)

        return summary

    def _summarize_workload(self, vpa: ManagedAutoscaler, workload: WorkloadRef) -> WorkloadSummary:
        w_summary = WorkloadSummary(
            workload_name=vpa.name,
            kind=vpa.target_ref.kind if vpa.target_ref else workload.kind,
        )

        if vpa.recommendations is None:
            logger.debug(f"Empty status on VPA/{vpa.name}")
            return w_summary
        if not vpa.recommendations:
            logger.debug(f"No recommendations found in VPA/{vpa.name}")
            return w_summary

        excluded = self.excluded_containers | workload.excluded_containers

        for rec in vpa.recommendations:
            if rec.container_name in excluded:
                logger.debug(f"Excluding container {workload.kind}/{workload.name}/{rec.container_name}")
                continue

            container = workload.get_container(rec.container_name)
            if container is None:
                logger.warning(
                    f"VPA/{vpa.name} has a recommendation for container {rec.container_name}, "
                    f"which {workload.kind}/{workload.name} does not have"
                )
                continue

            w_summary.containers[rec.container_name] = ContainerSummary(
                container_name=rec.container_name,
                lower_bound=format_resource_list(rec.lower_bound),
                upper_bound=format_resource_list(rec.upper_bound),
                target=format_resource_list(rec.target),
                uncapped_target=format_resource_list(rec.uncapped_target),
                limits=format_resource_list(container.limits),
                requests=format_resource_list(container.requests),
            )
            logger.debug(
                f"Resources for {workload.kind}/{workload.name}/{container.name}: "
                f"Requests: {container.requests} Limits: {container.limits}"
            )

        return w_summary
