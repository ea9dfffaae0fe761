"""Utility functions for resource quantities, booleans and label selectors."""

import math
from typing import Dict, Optional


_MEMORY_UNITS = {
    'Ki': 1024,
    'Mi': 1024 ** 2,
    'Gi': 1024 ** 3,
    'Ti': 1024 ** 4,
    'Pi': 1024 ** 5,
    'Ei': 1024 ** 6,
    'k': 1000,
    'K': 1000,
    'M': 1000 ** 2,
    'G': 1000 ** 3,
    'T': 1000 ** 4,
    'P': 1000 ** 5,
    'E': 1000 ** 6,
}

_TRUE_VALUES = ("1", "t", "T", "TRUE", "true", "True")
_FALSE_VALUES = ("0", "f", "F", "FALSE", "false", "False")


def parse_cpu(cpu_string: str) -> float:
    """
    Parse CPU string to cores (float).

    Examples:
        "100m" -> 0.1
        "1" -> 1.0
        "2500m" -> 2.5
    """
    if not cpu_string:
        return 0.0

    cpu_string = str(cpu_string).strip()

    if cpu_string.endswith('m'):
        return float(cpu_string[:-1]) / 1000
    return float(cpu_string)


def format_cpu(cores: float) -> str:
    """
    Format CPU cores to Kubernetes string, rounding up to whole millicores.

    Examples:
        0.1 -> "100m"
        1.5 -> "1500m"
        0.0251 -> "26m"
    """
    millicores = math.ceil(round(cores * 1000, 6))
    return f"{millicores}m"


def parse_memory(memory_string: str) -> float:
    """
    Parse memory string to bytes.

    Examples:
        "128Mi" -> 134217728
        "1Gi" -> 1073741824
        "512M" -> 536870912
        "262144k" -> 262144000
    """
    if not memory_string:
        return 0

    memory_string = str(memory_string).strip()

    # Two-letter binary suffixes must be tried before the decimal ones
    for suffix in sorted(_MEMORY_UNITS, key=len, reverse=True):
        if memory_string.endswith(suffix):
            value = float(memory_string[:-len(suffix)])
            return value * _MEMORY_UNITS[suffix]

    if memory_string.endswith('m'):
        return float(memory_string[:-1]) / 1000

    # Plain bytes
    return float(memory_string)


def format_memory(bytes_value: float) -> str:
    """Format bytes as a Kubernetes memory string in whole mebibytes, rounded up."""
    mi = math.ceil(round(bytes_value / (1024 ** 2), 6))
    return f"{mi}Mi"


def format_resource_list(resources: Optional[Dict[str, str]]) -> Dict[str, str]:
    """
    Normalize a resource map for presentation.

    CPU is rendered in millicores and memory in mebibytes. Other resources,
    and values that cannot be parsed, are passed through as strings.

    Args:
        resources: Mapping of resource name to quantity, or None

    Returns:
        A new mapping with formatted quantities
    """
    formatted = {}
    for name, quantity in (resources or {}).items():
        value = str(quantity)
        try:
            if name == "cpu":
                value = format_cpu(parse_cpu(value))
            elif name == "memory":
                value = format_memory(parse_memory(value))
        except ValueError:
            pass
        formatted[name] = value
    return formatted


def parse_bool(value: str) -> bool:
    """
    Parse a boolean the way Kubernetes tooling does.

    Raises:
        ValueError: if the value is not a recognized boolean literal
    """
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ValueError(f"invalid boolean value: {value!r}")


def label_selector(labels: Dict[str, str]) -> str:
    """Render a label map as an equality-based selector string."""
    return ",".join(f"{key}={labels[key]}" for key in sorted(labels))


def labels_match(labels: Optional[Dict[str, str]], selector: Dict[str, str]) -> bool:
    """Check if a label map contains every key/value of the selector."""
    labels = labels or {}

    for key, value in selector.items():
        if labels.get(key) != value:
            return False

    return True
