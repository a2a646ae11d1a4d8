"""
Monorun Orchestration — from workspace to finished run.

ARCHITECTURE
────────────
::

    Project (workspace.loader)
      └── build_target_graph()   ─ root + dependency closure, cycle check
            └── TargetGraph      ─ arena of Target records, by id
                  ├── RunCache   ─ content hash per target, persisted store
                  └── RunSupervisor
                        ├── ProcessRunner      (execution.process)
                        ├── OutputMultiplexer  (execution.output)
                        └── RunReporter → StreamReport (text or NDJSON)

    session.execute(profile, options)  ─ the one entry point for build/test

MODULE MAP (recommended reading order)
──────────────────────────────────────
1. targets.py     ─ Target, TargetState, TargetGraph, graph building
2. cache.py       ─ RunCacheStore (file) + RunCache (hash, skip, commit)
3. reporter.py    ─ StreamReport sink + RunReporter adapter
4. supervisor.py  ─ scheduling loop and state machine
5. session.py     ─ RunProfile (BUILD, TEST) and execute()
"""

from monorun.orchestration.cache import CACHE_VERSION, RunCache, RunCacheStore
from monorun.orchestration.reporter import RecordType, ReportRecord, RunReporter, StreamReport
from monorun.orchestration.session import BUILD, TEST, RunOptions, RunProfile, execute, run_profile
from monorun.orchestration.supervisor import (
    INVOCATION_ERROR_EXIT_CODE,
    FailurePolicy,
    RunRecord,
    RunSummary,
    RunSupervisor,
)
from monorun.orchestration.targets import (
    Target,
    TargetGraph,
    TargetState,
    build_target_graph,
    resolve_root,
)

__all__ = [
    # Targets
    "Target",
    "TargetGraph",
    "TargetState",
    "build_target_graph",
    "resolve_root",
    # Cache
    "CACHE_VERSION",
    "RunCache",
    "RunCacheStore",
    # Reporting
    "RecordType",
    "ReportRecord",
    "RunReporter",
    "StreamReport",
    # Supervisor
    "INVOCATION_ERROR_EXIT_CODE",
    "FailurePolicy",
    "RunRecord",
    "RunSummary",
    "RunSupervisor",
    # Session
    "BUILD",
    "TEST",
    "RunOptions",
    "RunProfile",
    "execute",
    "run_profile",
]
