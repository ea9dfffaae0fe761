"""Client for VerticalPodAutoscaler objects owned by this controller."""

import copy
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from kubernetes import client
from kubernetes.client.rest import ApiException

from .config import (
    OWNERSHIP_LABELS,
    UPDATE_RETRY_DELAY_SECONDS,
    UPDATE_RETRY_FACTOR,
    UPDATE_RETRY_JITTER,
    UPDATE_RETRY_STEPS,
    VPA_GROUP,
    VPA_KIND,
    VPA_PLURAL,
    VPA_VERSION,
)
from .utils import label_selector, labels_match

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetRef:
    """Reference to the workload a VPA targets."""
    api_version: str
    kind: str
    name: str

    @property
    def key(self) -> Tuple[str, str, str]:
        return (self.api_version, self.kind, self.name)

    @classmethod
    def from_dict(cls, ref: Optional[Dict[str, Any]]) -> Optional["TargetRef"]:
        if not ref:
            return None
        return cls(
            api_version=ref.get("apiVersion", ""),
            kind=ref.get("kind", ""),
            name=ref.get("name", ""),
        )

    def to_dict(self) -> Dict[str, str]:
        return {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}


@dataclass
class ContainerRecommendation:
    """Recommended resource bounds for one container, from VPA status."""
    container_name: str
    lower_bound: Dict[str, str] = field(default_factory=dict)
    upper_bound: Dict[str, str] = field(default_factory=dict)
    target: Dict[str, str] = field(default_factory=dict)
    uncapped_target: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, rec: Dict[str, Any]) -> "ContainerRecommendation":
        return cls(
            container_name=rec.get("containerName", ""),
            lower_bound=rec.get("lowerBound") or {},
            upper_bound=rec.get("upperBound") or {},
            target=rec.get("target") or {},
            uncapped_target=rec.get("uncappedTarget") or {},
        )


@dataclass
class ManagedAutoscaler:
    """Parsed VerticalPodAutoscaler object."""
    name: str
    namespace: str
    target_ref: Optional[TargetRef] = None
    update_mode: Optional[str] = None
    labels: Dict[str, str] = field(default_factory=dict)
    recommendations: Optional[List[ContainerRecommendation]] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_crd(cls, crd_object: Dict[str, Any]) -> "ManagedAutoscaler":
        """Create a ManagedAutoscaler from a VPA custom object."""
        metadata = crd_object.get("metadata") or {}
        spec = crd_object.get("spec") or {}
        status = crd_object.get("status") or {}
        update_policy = spec.get("updatePolicy") or {}

        recommendations = None
        recommendation = status.get("recommendation")
        if recommendation is not None:
            recommendations = [
                ContainerRecommendation.from_dict(rec)
                for rec in recommendation.get("containerRecommendations") or []
            ]

        return cls(
            name=metadata.get("name", ""),
            namespace=metadata.get("namespace", ""),
            target_ref=TargetRef.from_dict(spec.get("targetRef")),
            update_mode=update_policy.get("updateMode"),
            labels=dict(metadata.get("labels") or {}),
            recommendations=recommendations,
            metadata=copy.deepcopy(metadata),
        )

    @property
    def is_owned(self) -> bool:
        return labels_match(self.labels, OWNERSHIP_LABELS)

    def to_body(self) -> Dict[str, Any]:
        """Render the object for create/replace calls."""
        metadata = copy.deepcopy(self.metadata)
        metadata["name"] = self.name
        metadata["namespace"] = self.namespace
        metadata["labels"] = dict(self.labels)

        spec: Dict[str, Any] = {}
        if self.target_ref:
            spec["targetRef"] = self.target_ref.to_dict()
        if self.update_mode:
            spec["updatePolicy"] = {"updateMode": self.update_mode}

        return {
            "apiVersion": f"{VPA_GROUP}/{VPA_VERSION}",
            "kind": VPA_KIND,
            "metadata": metadata,
            "spec": spec,
        }


class VPAClient:
    """Read/write access to the VPAs carrying the ownership labels."""

    def __init__(self, custom_api: Optional[client.CustomObjectsApi] = None, dry_run: bool = False):
        """
        Initialize the VPA client.

        Args:
            custom_api: CustomObjectsApi to use (a default one is built if omitted)
            dry_run: If True, writes are logged but not sent
        """
        self.custom_api = custom_api or client.CustomObjectsApi()
        self.dry_run = dry_run

    def list_owned(self, namespace: str = "") -> List[ManagedAutoscaler]:
        """
        List VPAs owned by this controller.

        Args:
            namespace: Namespace to list from ("" for all namespaces)

        Returns:
            List of ManagedAutoscaler objects

        Raises:
            ApiException: if the list call fails
        """
        selector = label_selector(OWNERSHIP_LABELS)
        if namespace:
            response = self.custom_api.list_namespaced_custom_object(
                group=VPA_GROUP,
                version=VPA_VERSION,
                namespace=namespace,
                plural=VPA_PLURAL,
                label_selector=selector
            )
        else:
            response = self.custom_api.list_cluster_custom_object(
                group=VPA_GROUP,
                version=VPA_VERSION,
                plural=VPA_PLURAL,
                label_selector=selector
            )

        vpas = [ManagedAutoscaler.from_crd(item) for item in response.get("items", [])]
        # Never hand back an object we don't own, whatever the server returned
        vpas = [vpa for vpa in vpas if vpa.is_owned]

        logger.debug(f"There are {len(vpas)} vpas in {namespace or 'all namespaces'}")
        return vpas

    def create(self, vpa: ManagedAutoscaler) -> None:
        """
        Create a VPA.

        Raises:
            ApiException: if the create is rejected, including AlreadyExists (409)
        """
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would create VPA/{vpa.name} in Namespace/{vpa.namespace}")
            return

        try:
            self.custom_api.create_namespaced_custom_object(
                group=VPA_GROUP,
                version=VPA_VERSION,
                namespace=vpa.namespace,
                plural=VPA_PLURAL,
                body=vpa.to_body()
            )
        except ApiException as e:
            logger.error(f"Error creating VPA/{vpa.name} in Namespace/{vpa.namespace}: {e}")
            raise
        logger.info(f"Created VPA/{vpa.name} in Namespace/{vpa.namespace}")

    def update(self, vpa: ManagedAutoscaler) -> None:
        """
        Replace a VPA, retrying on conflict.

        Every attempt re-submits the same body instead of re-reading the
        stored object. This is only correct while this controller is the
        sole writer of the VPAs it owns.

        Raises:
            ApiException: on a non-conflict failure, or once retries run out
        """
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would update VPA/{vpa.name} in Namespace/{vpa.namespace}")
            return

        body = vpa.to_body()
        delay = UPDATE_RETRY_DELAY_SECONDS

        for attempt in range(1, UPDATE_RETRY_STEPS + 1):
            try:
                self.custom_api.replace_namespaced_custom_object(
                    group=VPA_GROUP,
                    version=VPA_VERSION,
                    namespace=vpa.namespace,
                    plural=VPA_PLURAL,
                    name=vpa.name,
                    body=body
                )
                break
            except ApiException as e:
                if e.status != 409 or attempt == UPDATE_RETRY_STEPS:
                    logger.error(f"Error updating VPA/{vpa.name} in Namespace/{vpa.namespace}: {e}")
                    raise
                logger.debug(
                    f"Conflict updating VPA/{vpa.name} (attempt {attempt}/{UPDATE_RETRY_STEPS}), retrying"
                )
                time.sleep(delay + random.uniform(0, delay * UPDATE_RETRY_JITTER))
                delay *= UPDATE_RETRY_FACTOR

        logger.info(f"Updated VPA/{vpa.name} in Namespace/{vpa.namespace}")

    def delete(self, vpa: ManagedAutoscaler) -> None:
        """
        Delete a VPA. A VPA that is already gone counts as deleted.

        Raises:
            ApiException: if the delete is rejected for any other reason
        """
        if self.dry_run:
            logger.info(f"[DRY-RUN] Would delete VPA/{vpa.name} in Namespace/{vpa.namespace}")
            return

        try:
            self.custom_api.delete_namespaced_custom_object(
                group=VPA_GROUP,
                version=VPA_VERSION,
                namespace=vpa.namespace,
                plural=VPA_PLURAL,
                name=vpa.name
            )
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"VPA/{vpa.name} in Namespace/{vpa.namespace} already deleted")
                return
            logger.error(f"Error deleting VPA/{vpa.name} in Namespace/{vpa.namespace}: {e}")
            raise
        logger.info(f"Deleted VPA/{vpa.name} in Namespace/{vpa.namespace}")
