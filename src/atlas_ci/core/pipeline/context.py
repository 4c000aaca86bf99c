# src/atlas_ci/core/pipeline/context.py
"""
Contexto de execução de uma run do pipeline de build.

Este módulo define o `PipelineContext`, a estrutura canônica que acompanha
uma TaskHistory do início ao fim da orquestração.

O PipelineContext é o único meio permitido de:
    - registrar logs estruturados de execução (por aresta)
    - escrever linhas humanas no log de texto da task
    - coletar warnings não fatais por aresta
    - acumular resultados de arestas e artefatos da run (ex.: release descriptor)
    - atualizar o Manifest (quando anexado)

Princípios fundamentais:
    - Isolamento por execução (cada run possui seu próprio contexto)
    - Ausência de logger global: observabilidade é explícita e rastreável
    - Seguro para arestas de dependência executadas em paralelo (lock interno)

Invariantes:
    - Eventos de log sempre incluem `run_id` e `edge_id`
    - Warnings são agrupados por `edge_id`
    - Resultados são indexados por `edge_id`, na ordem de conclusão

Limites explícitos:
    - Não executa builds
    - Não decide políticas de execução
    - Não adquire locks de projeto
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from atlas_ci.core.config.settings import BuildSettings

from .types import EdgeResult, TaskHistory


@dataclass
class PipelineContext:
    """
    Contexto de execução compartilhado de uma run do pipeline.

    Consolida:
        - identidade da execução (run_id, created_at, task_history)
        - configuração efetiva, hash e `BuildSettings`
        - eventos estruturados, warnings e resultados por aresta
        - Manifest opcional (rastreabilidade forense)
    """
    run_id: str
    created_at: datetime
    task_history: TaskHistory
    config: Dict[str, Any]
    settings: BuildSettings
    is_rollback: bool = False
    config_hash: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)
    manifest: Optional[Any] = None

    _artifacts: Dict[str, Any] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)
    events: List[Dict[str, Any]] = field(default_factory=list, init=False)
    warnings: Dict[str, List[str]] = field(default_factory=dict, init=False)
    results: Dict[str, EdgeResult] = field(default_factory=dict, init=False)

    @classmethod
    def for_task(
        cls,
        task_history: TaskHistory,
        *,
        config: Dict[str, Any],
        settings: Optional[BuildSettings] = None,
        is_rollback: bool = False,
        config_hash: str = "",
        manifest: Optional[Any] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> "PipelineContext":
        return cls(
            run_id=f"task-{task_history.id}",
            created_at=datetime.now(timezone.utc),
            task_history=task_history,
            config=config,
            settings=settings or BuildSettings.from_config(config),
            is_rollback=is_rollback,
            config_hash=config_hash,
            manifest=manifest,
            meta=dict(meta or {}),
        )

    # -----------------------------
    # Artifact store
    # -----------------------------
    def set_artifact(self, key: str, value: Any) -> None:
        with self._lock:
            self._artifacts[key] = value

    def has_artifact(self, key: str) -> bool:
        return key in self._artifacts

    def get_artifact(self, key: str) -> Any:
        if key not in self._artifacts:
            raise KeyError(key)
        return self._artifacts[key]

    # -----------------------------
    # Logging & warnings
    # -----------------------------
    def log(self, *, edge_id: str, level: str, message: str, **extra: Any) -> None:
        event = {
            "run_id": self.run_id,
            "edge_id": edge_id,
            "level": level,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        event.update(extra)
        with self._lock:
            self.events.append(event)

    def add_warning(self, *, edge_id: str, message: str) -> None:
        with self._lock:
            self.warnings.setdefault(edge_id, []).append(message)

    def write_job_log(self, template: str, *args: Any) -> str:
        """Formata e anexa uma linha ao log de texto da task; devolve a mensagem."""
        message = template % args if args else template
        path = self.settings.job_log(self.task_history.id)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        with self._lock:
            path.parent.mkdir(parents=True, exist_ok=True)
            with path.open("a", encoding="utf-8") as f:
                f.write(f"[{stamp}] {message}\n")
        return message

    # -----------------------------
    # Resultados & Manifest
    # -----------------------------
    def record_result(self, result: EdgeResult) -> None:
        with self._lock:
            self.results[result.edge_id] = result

    def trace(self, update: Callable[..., None], **kwargs: Any) -> None:
        """Aplica `update(manifest, **kwargs)` quando há Manifest anexado."""
        if self.manifest is None:
            return
        with self._lock:
            update(self.manifest, **kwargs)
