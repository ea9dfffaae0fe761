"""Namespace and workload policy resolution for managed VPAs."""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .config import ENABLED_LABEL, UPDATE_MODE_KEY
from .utils import parse_bool

logger = logging.getLogger(__name__)


class UpdateMode(str, Enum):
    """VPA update policy modes."""
    OFF = "Off"
    INITIAL = "Initial"
    RECREATE = "Recreate"
    AUTO = "Auto"


def normalize_update_mode(value: str) -> Optional[UpdateMode]:
    """
    Normalize a user supplied update mode.

    The first letter is upper-cased and the rest lower-cased, so "auto",
    "AUTO" and "Auto" all resolve to UpdateMode.AUTO.

    Returns:
        The matching UpdateMode, or None if the value is not a known mode
    """
    value = (value or "").strip()
    if not value:
        return None

    value = value[0].upper() + value[1:].lower()
    try:
        return UpdateMode(value)
    except ValueError:
        return None


def update_mode_for_resource(
    annotations: Optional[Dict[str, str]],
    labels: Optional[Dict[str, str]],
    resource: str = "",
) -> Tuple[UpdateMode, bool]:
    """
    Look up the update mode requested on a namespace or workload.

    The annotation wins over the label. When neither is set, or the value is
    not a known mode, the result is UpdateMode.OFF and not explicit.

    Args:
        annotations: Object annotations
        labels: Object labels
        resource: Object description used in log messages

    Returns:
        Tuple of (update_mode, explicit)
    """
    annotations = annotations or {}
    labels = labels or {}

    if UPDATE_MODE_KEY in annotations:
        requested = annotations[UPDATE_MODE_KEY]
    elif UPDATE_MODE_KEY in labels:
        requested = labels[UPDATE_MODE_KEY]
    else:
        return UpdateMode.OFF, False

    mode = normalize_update_mode(requested)
    if mode is None:
        logger.warning(
            f"Ignoring unsupported {UPDATE_MODE_KEY}={requested!r} on {resource or 'object'}"
        )
        return UpdateMode.OFF, False

    return mode, True


@dataclass
class Policy:
    """Resolved policy for a namespace."""
    enabled: bool
    update_mode: UpdateMode = UpdateMode.OFF


@dataclass
class NamespacePolicy:
    """Process-wide enablement settings."""
    on_by_default: bool = False
    include_namespaces: List[str] = field(default_factory=list)
    exclude_namespaces: List[str] = field(default_factory=list)

    def namespace_is_managed(self, name: str, labels: Optional[Dict[str, str]]) -> bool:
        """
        Decide whether VPAs should be managed in a namespace.

        The enabled label wins, then the include list, then the exclude
        list, then the process-wide default. An unparsable label value
        disables management.
        """
        for key, value in (labels or {}).items():
            if key.lower() != ENABLED_LABEL:
                continue
            try:
                return parse_bool(value)
            except ValueError:
                logger.error(
                    f"Found unsupported value for Namespace/{name} label {key}={value}, defaulting to false"
                )
                return False

        if name in self.include_namespaces:
            return True
        if name in self.exclude_namespaces:
            return False

        return self.on_by_default

    def resolve(
        self,
        name: str,
        labels: Optional[Dict[str, str]],
        annotations: Optional[Dict[str, str]],
    ) -> Policy:
        """Resolve enablement and default update mode for a namespace."""
        update_mode, _ = update_mode_for_resource(annotations, labels, f"Namespace/{name}")
        return Policy(
            enabled=self.namespace_is_managed(name, labels),
            update_mode=update_mode,
        )


def resolve_workload_update_mode(workload, namespace_mode: UpdateMode) -> UpdateMode:
    """Apply a workload's explicit update mode over the namespace default."""
    mode, explicit = update_mode_for_resource(
        workload.annotations,
        workload.labels,
        f"{workload.kind}/{workload.name}",
    )
    if explicit:
        logger.debug(f"{workload.kind}/{workload.name} has custom {UPDATE_MODE_KEY}={mode.value}")
        return mode
    return namespace_mode
