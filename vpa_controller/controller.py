"""Main controller loop for the VPA controller."""

import logging
import threading
import time
from typing import Optional

from kubernetes import client, watch
from kubernetes.client.rest import ApiException

from .config import WATCH_TIMEOUT_SECONDS, RECONCILE_INTERVAL_SECONDS
from .reconciler import VPAReconciler

logger = logging.getLogger(__name__)


class VPAController:
    """
    Watches namespaces and periodically re-reconciles all of them, so every
    namespace's owned VPAs converge to its workloads.
    """

    def __init__(self, reconciler: VPAReconciler, core_api: Optional[client.CoreV1Api] = None):
        """
        Initialize the controller.

        Args:
            reconciler: The reconciler applied to each namespace
            core_api: CoreV1Api used to list and watch namespaces
        """
        self.reconciler = reconciler
        self.core_api = core_api or client.CoreV1Api()

        self._stop_event = threading.Event()

    def reconcile(self, namespace: client.V1Namespace) -> bool:
        """
        Reconcile one namespace, logging failures.

        Returns:
            True if the namespace was reconciled without error
        """
        name = namespace.metadata.name
        try:
            results = self.reconciler.reconcile_namespace(namespace)
        except ApiException as e:
            logger.error(f"Error reconciling Namespace/{name}: {e}")
            return False
        except Exception as e:
            logger.error(f"Unexpected error reconciling Namespace/{name}: {e}")
            return False

        if results:
            logger.info(f"Reconciled Namespace/{name}: {len(results)} VPA(s) processed")
        return True

    def reconcile_all(self) -> int:
        """
        Reconcile every namespace in the cluster.

        A failing namespace does not stop the others; it is retried on the
        next pass.

        Returns:
            Number of namespaces that failed
        """
        namespaces = self.core_api.list_namespace()
        failures = 0
        for namespace in namespaces.items:
            if self._stop_event.is_set():
                break
            if not self.reconcile(namespace):
                failures += 1
        return failures

    def handle_namespace_event(self, event_type: str, namespace: client.V1Namespace) -> None:
        """
        Handle a namespace watch event.

        Args:
            event_type: ADDED, MODIFIED, or DELETED
            namespace: The namespace object from the event
        """
        if event_type == "DELETED":
            # VPAs go away with the namespace
            return

        logger.debug(f"Namespace {event_type}: {namespace.metadata.name}")
        self.reconcile(namespace)

    def watch_namespaces(self) -> None:
        """Watch for namespace events in a loop."""
        logger.info("Starting namespace watcher...")
        w = watch.Watch()

        while not self._stop_event.is_set():
            try:
                for event in w.stream(
                    self.core_api.list_namespace,
                    timeout_seconds=WATCH_TIMEOUT_SECONDS
                ):
                    if self._stop_event.is_set():
                        break
                    self.handle_namespace_event(event["type"], event["object"])

            except ApiException as e:
                logger.error(f"Namespace watch error: {e}")
                time.sleep(5)
            except Exception as e:
                logger.error(f"Unexpected error in namespace watcher: {e}")
                time.sleep(5)

    def periodic_reconcile(self) -> None:
        """Periodically reconcile all namespaces."""
        logger.info(f"Starting periodic reconciler (interval: {RECONCILE_INTERVAL_SECONDS}s)")

        while not self._stop_event.wait(RECONCILE_INTERVAL_SECONDS):
            logger.debug("Running periodic reconciliation...")
            try:
                failures = self.reconcile_all()
            except ApiException as e:
                logger.error(f"Error listing namespaces: {e}")
                continue
            except Exception as e:
                logger.error(f"Unexpected error in periodic reconciler: {e}")
                continue
            if failures:
                logger.warning(f"{failures} namespace(s) failed to reconcile, will retry")

    def run(self) -> None:
        """Run the controller."""
        logger.info("=" * 60)
        logger.info("Starting VPA Controller")
        logger.info("=" * 60)
        logger.info(f"Dry run: {self.reconciler.vpa_client.dry_run}")

        watch_thread = threading.Thread(
            target=self.watch_namespaces,
            name="namespace-watcher",
            daemon=True
        )

        reconcile_thread = threading.Thread(
            target=self.periodic_reconcile,
            name="periodic-reconciler",
            daemon=True
        )

        watch_thread.start()
        reconcile_thread.start()

        logger.info("Controller is running. Press Ctrl+C to stop.")

        try:
            while not self._stop_event.is_set():
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("Shutdown requested...")
            self._stop_event.set()

    def stop(self) -> None:
        """Stop the controller."""
        logger.info("Stopping controller...")
        self._stop_event.set()
