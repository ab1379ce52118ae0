"""
CodeThreat CLI - Security scanning for CI/CD pipelines

Submits security scans to a CodeThreat server, waits for them to finish
and turns the findings into a pass/fail signal for the build.

Copyright (c) 2025
Licensed under MIT License
"""

__version__ = "1.0.0"
__author__ = "CodeThreat Team"
__status__ = "Production"
