"""
Monorun - dependency-ordered, cached, concurrent script runs for multi-package repositories.

Subpackages:
- monorun.core: errors, logging, hashing, settings
- monorun.workspace: project and package discovery from package.json manifests
- monorun.execution: process runner and output multiplexer
- monorun.orchestration: target graph, run cache, supervisor, reporter, session
- monorun.cli: the ``monorun`` command
"""

__version__ = "0.3.0"
