"""
Command line interface for the VPA controller.

Keeps VerticalPodAutoscalers in step with the Deployments and StatefulSets
of managed namespaces, and prints a summary of their recommendations.

Usage:
    vpa-controller [--in-cluster] [--verbose] controller [--on-by-default] [--dry-run] ...
    vpa-controller [--in-cluster] [--verbose] summary [--namespace NAMESPACE] ...
"""

import argparse
import json
import logging
import sys

from kubernetes import client, config

from .controller import VPAController
from .policy import NamespacePolicy
from .reconciler import VPAReconciler
from .summary import Summarizer
from .vpa_client import VPAClient
from .workloads import WorkloadCatalog

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def split_list(value: str) -> list:
    """Split a comma-separated argument into its non-empty items."""
    return [item.strip() for item in value.split(",") if item.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="VPA Controller - Manage VPAs for workloads and summarize their recommendations"
    )
    parser.add_argument(
        "--in-cluster",
        action="store_true",
        help="Use in-cluster config (for running inside Kubernetes)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose/debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    controller_parser = subparsers.add_parser(
        "controller",
        help="Create, update and delete VPAs for workloads in managed namespaces"
    )
    controller_parser.add_argument(
        "--on-by-default",
        action="store_true",
        help="Manage namespaces that have no enabled label"
    )
    controller_parser.add_argument(
        "--include-namespaces",
        type=split_list,
        default=[],
        help="Comma-separated namespaces to manage when they have no enabled label"
    )
    controller_parser.add_argument(
        "--exclude-namespaces",
        type=split_list,
        default=[],
        help="Comma-separated namespaces to leave unmanaged when they have no enabled label"
    )
    controller_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Run in dry-run mode (no changes made)"
    )
    controller_parser.add_argument(
        "--skip-unchanged",
        action="store_true",
        help="Don't send updates for VPAs that already match their workload"
    )

    summary_parser = subparsers.add_parser(
        "summary",
        help="Print recommendations of managed VPAs as JSON"
    )
    summary_parser.add_argument(
        "--namespace", "-n",
        default="",
        help="Namespace to summarize (default: all namespaces)"
    )
    summary_parser.add_argument(
        "--exclude-containers",
        type=split_list,
        default=[],
        help="Comma-separated container names to leave out of the summary"
    )
    return parser


def run_controller(args) -> None:
    vpa_client = VPAClient(client.CustomObjectsApi(), dry_run=args.dry_run)
    reconciler = VPAReconciler(
        vpa_client=vpa_client,
        workload_catalog=WorkloadCatalog(client.AppsV1Api()),
        namespace_policy=NamespacePolicy(
            on_by_default=args.on_by_default,
            include_namespaces=args.include_namespaces,
            exclude_namespaces=args.exclude_namespaces,
        ),
        skip_unchanged_updates=args.skip_unchanged,
    )
    controller = VPAController(reconciler, core_api=client.CoreV1Api())

    try:
        controller.run()
    except KeyboardInterrupt:
        controller.stop()
        logger.info("Controller stopped")


def run_summary(args) -> None:
    summarizer = Summarizer(
        VPAClient(client.CustomObjectsApi()),
        WorkloadCatalog(client.AppsV1Api()),
        namespace=args.namespace,
        excluded_containers=args.exclude_containers,
    )
    summary = summarizer.get_summary()
    print(json.dumps(summary.to_dict(), indent=2, sort_keys=True))


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Set log level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Load Kubernetes configuration
    try:
        if args.in_cluster:
            config.load_incluster_config()
            logger.info("Loaded in-cluster configuration")
        else:
            config.load_kube_config()
            logger.info("Loaded kubeconfig from default location")
    except Exception as e:
        logger.error(f"Failed to load Kubernetes config: {e}")
        sys.exit(1)

    try:
        if args.command == "controller":
            run_controller(args)
        else:
            run_summary(args)
    except Exception as e:
        logger.error(f"{args.command} error: {e}")
        sys.exit(1)
