#!/usr/bin/env python3
"""
CodeThreat CLI - Security scanning for CI/CD pipelines

Entry point for running the CLI from a source checkout.

Usage:
    python main.py scan run REPO_ID --organization acme --wait
    python main.py config show
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from codethreat.cli import cli


if __name__ == '__main__':
    cli()
