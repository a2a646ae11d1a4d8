"""
CLI layer for monorun.

Provides the Typer application with the ``build`` and ``test`` commands
in :mod:`monorun.cli.app`. All run logic lives in
:mod:`monorun.orchestration.session`; this package handles only argument
parsing and the process exit code.

Entry point::

    monorun --help
"""
