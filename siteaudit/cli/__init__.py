"""CLI module for SiteAudit.

This package provides the command-line interface for running audits and
batches from the command line.
"""

from .runner import (
    # Exit codes
    ExitCode,

    # Main CLI runner
    AuditRunner,
)
from .config import CLIConfiguration, load_configuration, validate_configuration

__all__ = [
    # Exit codes
    'ExitCode',

    # Main CLI runner
    'AuditRunner',

    # Configuration
    'CLIConfiguration',
    'load_configuration',
    'validate_configuration',
]
