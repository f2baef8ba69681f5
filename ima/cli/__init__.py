"""
CLI Module for IMA signatures

Provides command-line tools:
- imactl: sign, verify and inspect IMA signatures

Usage:
    python -m ima.cli.imactl sign /usr/bin/tool
    python -m ima.cli.imactl verify /usr/bin/tool
"""

from .imactl import build_parser, main as imactl_main

__all__ = [
    'build_parser',
    'imactl_main',
]
