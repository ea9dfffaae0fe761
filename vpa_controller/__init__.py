"""Keeps VerticalPodAutoscalers in step with Deployments and StatefulSets."""

__version__ = "0.1.0"
