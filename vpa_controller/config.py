"""Configuration settings for the VPA controller."""

# VerticalPodAutoscaler CRD settings
VPA_GROUP = "autoscaling.k8s.io"
VPA_VERSION = "v1"
VPA_PLURAL = "verticalpodautoscalers"
VPA_KIND = "VerticalPodAutoscaler"

# Labels applied to every VPA this controller owns; also the list selector
OWNERSHIP_LABELS = {
    "app.kubernetes.io/managed-by": "vpa-controller",
    "vpa-controller.io/owned": "true",
}

# Namespace label that turns management on or off
ENABLED_LABEL = "vpa-controller.io/enabled"

# Annotation (or label) selecting the VPA update mode on a namespace or workload
UPDATE_MODE_KEY = "vpa-controller.io/vpa-update-mode"

# Workload annotation listing containers to leave out of the summary
EXCLUDE_CONTAINERS_ANNOTATION = "vpa-controller.io/exclude-containers"

# Workloads
WORKLOAD_API_VERSION = "apps/v1"
DEPLOYMENT_KIND = "Deployment"
STATEFULSET_KIND = "StatefulSet"
LIST_PAGE_SIZE = 500

# Retry settings for update conflicts
UPDATE_RETRY_STEPS = 5
UPDATE_RETRY_DELAY_SECONDS = 0.01
UPDATE_RETRY_FACTOR = 1.0
UPDATE_RETRY_JITTER = 0.1

# Watch settings
WATCH_TIMEOUT_SECONDS = 300
RECONCILE_INTERVAL_SECONDS = 60
