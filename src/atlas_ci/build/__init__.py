"""
Build de projetos: resolução de comandos e execução de processos.

- command → `BuildCommandResolver` e `DefaultCommandTable`
- runner  → `ProcessRunner` (timeout duro, log único da task, destruição forçada)
"""

from .command import (
    BUILTIN_DEFAULT_COMMANDS,
    BuildCommandResolver,
    DefaultCommandTable,
    ResolvedCommand,
    build_placeholders,
)
from .runner import ProcessOutcome, ProcessRunner

__all__ = [
    "BUILTIN_DEFAULT_COMMANDS",
    "BuildCommandResolver",
    "DefaultCommandTable",
    "ProcessOutcome",
    "ProcessRunner",
    "ResolvedCommand",
    "build_placeholders",
]
