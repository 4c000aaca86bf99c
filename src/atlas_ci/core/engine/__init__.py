# src/atlas_ci/core/engine/__init__.py
"""
Engine do Atlas CI.

Este pacote planeja e executa a run de build de uma TaskHistory: todas as
dependências antes do primário, cada projeto sob o seu mutex, e o hook
pós-build uma única vez ao final.

Componentes principais:
    - planner     → arestas determinísticas (dependências, depois o primário)
    - coordinator → máquina de estados de uma aresta (lock, fonte, proveniência, build)
    - engine      → orquestração da run, política fail-fast e Manifest

Invariantes:
    - Nenhum build do primário começa antes de todas as dependências terminarem
    - Cada projeto é buildado no máximo uma vez por run
    - Falhas propagam sem alteração após serem registradas

Limites explícitos:
    - Não implementa VCS nem persistência de registros (colaboradores externos)
    - Não faz retry
"""

from .coordinator import DependencyBuildCoordinator
from .engine import RELEASE_ARTIFACT, PipelineOrchestrator, PipelineResult
from .planner import extract_override_command, plan_build_edges

__all__ = [
    "DependencyBuildCoordinator",
    "PipelineOrchestrator",
    "PipelineResult",
    "RELEASE_ARTIFACT",
    "extract_override_command",
    "plan_build_edges",
]
