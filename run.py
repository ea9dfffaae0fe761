#!/usr/bin/env python3
"""
VPA Controller - Entry Point

Usage:
    python run.py [--in-cluster] [--verbose] controller [--on-by-default] [--dry-run] ...
    python run.py [--in-cluster] [--verbose] summary [--namespace NAMESPACE] ...
"""

from vpa_controller.cli import main


if __name__ == "__main__":
    main()
