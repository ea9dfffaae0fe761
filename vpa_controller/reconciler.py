"""Reconciliation logic keeping owned VPAs in step with workloads."""

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client

from .config import OWNERSHIP_LABELS
from .policy import NamespacePolicy, Policy, UpdateMode, resolve_workload_update_mode
from .vpa_client import ManagedAutoscaler, TargetRef, VPAClient
from .workloads import WorkloadCatalog, WorkloadRef

logger = logging.getLogger(__name__)


def match_workloads(
    workloads: List[WorkloadRef],
    vpas: List[ManagedAutoscaler],
) -> Tuple[List[Tuple[WorkloadRef, Optional[ManagedAutoscaler]]], List[ManagedAutoscaler]]:
    """
    Pair each workload with the owned VPA that belongs to it.

    The VPA named after the workload is looked up first and kept if its
    targetRef points at the workload. Otherwise any VPA whose targetRef
    points at the workload is used, preferring the lowest name when there are
    several. Only after every workload had its chance at a targetRef match
    may a workload claim a VPA by name alone (its targetRef is then stale).

    Returns:
        Tuple of (workload/VPA pairs in catalog order, unmatched VPAs)
    """
    by_name = {vpa.name: vpa for vpa in vpas}
    by_target: Dict[Tuple[str, str, str], List[ManagedAutoscaler]] = {}
    for vpa in sorted(vpas, key=lambda v: v.name):
        if vpa.target_ref:
            by_target.setdefault(vpa.target_ref.key, []).append(vpa)

    claimed = set()
    matches: Dict[int, ManagedAutoscaler] = {}

    for idx, workload in enumerate(workloads):
        candidate = by_name.get(workload.autoscaler_name)
        if (
            candidate is not None
            and candidate.target_ref is not None
            and candidate.target_ref.key == workload.target_key
        ):
            match = candidate
        else:
            match = next(
                (vpa for vpa in by_target.get(workload.target_key, []) if vpa.name not in claimed),
                None
            )
        if match is not None:
            claimed.add(match.name)
            matches[idx] = match

    for idx, workload in enumerate(workloads):
        if idx in matches:
            continue
        candidate = by_name.get(workload.autoscaler_name)
        if candidate is not None and candidate.name not in claimed:
            logger.debug(f"VPA/{candidate.name} targets {candidate.target_ref}, retargeting to {workload.kind}/{workload.name}")
            claimed.add(candidate.name)
            matches[idx] = candidate

    pairs = [(workload, matches.get(idx)) for idx, workload in enumerate(workloads)]
    unmatched = [vpa for vpa in vpas if vpa.name not in claimed]
    return pairs, unmatched


def build_desired_vpa(
    workload: WorkloadRef,
    namespace: str,
    existing: Optional[ManagedAutoscaler],
    update_mode: UpdateMode,
) -> ManagedAutoscaler:
    """
    Build the VPA a workload should have.

    An existing VPA is used as the template, so its name, resourceVersion
    and other metadata are kept. Labels are reset to the ownership labels.
    """
    if existing is None:
        desired = ManagedAutoscaler(name=workload.autoscaler_name, namespace=namespace)
    else:
        desired = copy.deepcopy(existing)

    desired.labels = dict(OWNERSHIP_LABELS)
    desired.target_ref = TargetRef(
        api_version=workload.api_version,
        kind=workload.kind,
        name=workload.name,
    )
    desired.update_mode = update_mode.value
    return desired


def vpa_is_unchanged(existing: ManagedAutoscaler, desired: ManagedAutoscaler) -> bool:
    return (
        existing.labels == desired.labels
        and existing.target_ref == desired.target_ref
        and existing.update_mode == desired.update_mode
    )


class VPAReconciler:
    """Converges the owned VPAs of a namespace to its workloads."""

    def __init__(
        self,
        vpa_client: VPAClient,
        workload_catalog: WorkloadCatalog,
        namespace_policy: Optional[NamespacePolicy] = None,
        skip_unchanged_updates: bool = False,
    ):
        """
        Initialize the reconciler.

        Args:
            vpa_client: Store for owned VPAs (carries the dry-run switch)
            workload_catalog: Source of Deployments and StatefulSets
            namespace_policy: Process-wide enablement settings
            skip_unchanged_updates: If True, don't send updates that change nothing
        """
        self.vpa_client = vpa_client
        self.workload_catalog = workload_catalog
        self.namespace_policy = namespace_policy or NamespacePolicy()
        self.skip_unchanged_updates = skip_unchanged_updates

    def reconcile_namespace(self, namespace: client.V1Namespace) -> List[Dict[str, Any]]:
        """
        Make a VPA for every workload in a managed namespace, or remove
        all owned VPAs from an unmanaged one.

        Processing stops at the first failed write; VPAs handled before it
        stay reconciled and the rest are left for the next pass.

        Args:
            namespace: The V1Namespace to reconcile

        Returns:
            List of result dicts, one per VPA acted on

        Raises:
            ApiException: on any read failure or failed write
        """
        ns_name = namespace.metadata.name
        vpas = self.vpa_client.list_owned(ns_name)

        policy = self.namespace_policy.resolve(
            ns_name,
            namespace.metadata.labels,
            namespace.metadata.annotations,
        )

        if not policy.enabled:
            logger.info(f"Namespace/{ns_name} is not managed, cleaning up VPAs...")
            return self._clean_up_namespace(ns_name, vpas)

        workloads = self.workload_catalog.list_workloads(ns_name)
        return self._reconcile_workloads(ns_name, policy, workloads, vpas)

    def _clean_up_namespace(self, ns_name: str, vpas: List[ManagedAutoscaler]) -> List[Dict[str, Any]]:
        if not vpas:
            logger.debug(f"No managed VPAs found in Namespace/{ns_name}, skipping cleanup")
            return []

        logger.info(f"Deleting all managed VPAs in Namespace/{ns_name}")
        results = []
        for vpa in vpas:
            self.vpa_client.delete(vpa)
            results.append(self._result(vpa, "deleted"))
        return results

    def _reconcile_workloads(
        self,
        ns_name: str,
        policy: Policy,
        workloads: List[WorkloadRef],
        vpas: List[ManagedAutoscaler],
    ) -> List[Dict[str, Any]]:
        pairs, dangling = match_workloads(workloads, vpas)
        results = []

        for workload, existing in pairs:
            update_mode = resolve_workload_update_mode(workload, policy.update_mode)
            desired = build_desired_vpa(workload, ns_name, existing, update_mode)
            logger.debug(f"Reconciling Namespace/{ns_name} for {workload.kind}/{workload.name} with VPA/{desired.name}")
            results.append(self._reconcile_workload_vpa(workload, existing, desired))

        for vpa in dangling:
            logger.info(f"Deleting dangling VPA/{vpa.name} in Namespace/{ns_name}")
            self.vpa_client.delete(vpa)
            results.append(self._result(vpa, "deleted"))

        return results

    def _reconcile_workload_vpa(
        self,
        workload: WorkloadRef,
        existing: Optional[ManagedAutoscaler],
        desired: ManagedAutoscaler,
    ) -> Dict[str, Any]:
        if existing is None:
            logger.debug(f"{workload.kind}/{workload.name} does not have a VPA currently, creating VPA/{desired.name}")
            self.vpa_client.create(desired)
            return self._result(desired, "created")

        if self.skip_unchanged_updates and vpa_is_unchanged(existing, desired):
            logger.debug(f"VPA/{desired.name} already matches {workload.kind}/{workload.name}, not updating")
            return self._result(desired, "unchanged")

        logger.debug(f"{workload.kind}/{workload.name} has a VPA currently, updating VPA/{desired.name}")
        self.vpa_client.update(desired)
        return self._result(desired, "updated")

    def _result(self, vpa: ManagedAutoscaler, action: str) -> Dict[str, Any]:
        return {
            "name": vpa.name,
            "namespace": vpa.namespace,
            "action": action,
            "dryRun": self.vpa_client.dry_run,
            "lastUpdated": datetime.now(timezone.utc).isoformat(),
        }
