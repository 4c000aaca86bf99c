# src/atlas_ci/core/traceability/manifest.py
"""
Manifest v1: rastreabilidade forense de runs de build no Atlas CI.

O Manifest consolida, de forma determinística e auditável:
    - metadados da run (task, projeto primário, branch, rollback)
    - hash da configuração efetiva
    - estado incremental de cada aresta (dependências e primário)
    - Event Log ordenado de eventos explícitos (transições de estado,
      espera por lock, assinatura de proveniência, falhas)

Princípios fundamentais:
    - Nenhum evento é emitido implicitamente
    - A ordem do Event Log reflete a ordem real de chamada
    - O Manifest é serializável e reconstruível (round-trip)
    - UTC é o timezone canônico para todos os timestamps

Limites explícitos:
    - Não executa builds
    - Não decide políticas de execução
    - Não substitui o log de texto da task (saída dos comandos)
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional


def _ensure_tzaware_utc(dt: datetime) -> datetime:
    """Normaliza um timestamp para timezone-aware em UTC (naive é tratado como UTC)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _iso(dt: datetime) -> str:
    return _ensure_tzaware_utc(dt).isoformat()


def _ms_between(start: datetime, end: datetime) -> int:
    """Duração em ms, nunca negativa."""
    s = _ensure_tzaware_utc(start)
    e = _ensure_tzaware_utc(end)
    return max(0, int((e - s).total_seconds() * 1000))


@dataclass
class AtlasManifest:
    """
    Manifest v1: registro forense de uma run de build.

    Campos principais:
        - run: task_id, project_id, branch, rollback, started_at, status final
        - inputs: config_hash
        - edges: estado por edge_id (dependency.<id> / primary.<id>)
        - events: Event Log ordenado
    """
    run: Dict[str, Any]
    inputs: Dict[str, Any]
    edges: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    events: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run": dict(self.run),
            "inputs": dict(self.inputs),
            "edges": {k: dict(v) for k, v in self.edges.items()},
            "events": [dict(e) for e in self.events],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AtlasManifest":
        return cls(
            run=dict(data.get("run", {})),
            inputs=dict(data.get("inputs", {})),
            edges={k: dict(v) for k, v in (data.get("edges", {}) or {}).items()},
            events=[dict(e) for e in (data.get("events", []) or [])],
        )


def create_manifest(
    *,
    task_id: int,
    project_id: int,
    branch: str,
    is_rollback: bool,
    started_at: datetime,
    atlas_version: str,
    config_hash: str,
    ref_id: Optional[int] = None,
) -> AtlasManifest:
    """
    Cria o Manifest inicial de uma run.

    ⚠️ Importante: esta função **não emite eventos implicitamente**; o Event
    Log inicia vazio.
    """
    return AtlasManifest(
        run={
            "task_id": task_id,
            "project_id": project_id,
            "branch": branch,
            "rollback": bool(is_rollback),
            "ref_id": ref_id,
            "started_at": _iso(started_at),
            "atlas_version": atlas_version,
            "status": "running",
        },
        inputs={"config_hash": config_hash},
        edges={},
        events=[],
    )


def add_event(
    manifest: AtlasManifest,
    *,
    event_type: str,
    ts: datetime,
    edge_id: Optional[str] = None,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Adiciona um evento explícito ao Event Log (ordem de chamada preservada)."""
    ev: Dict[str, Any] = {"event_type": event_type, "timestamp": _iso(ts)}
    if edge_id is not None:
        ev["edge_id"] = edge_id
    if payload is not None:
        ev["payload"] = payload
    manifest.events.append(ev)


def edge_started(
    manifest: AtlasManifest,
    *,
    edge_id: str,
    project_id: int,
    is_dependency: bool,
    ts: datetime,
) -> None:
    """Marca a aresta como em execução (estágio inicial LOCK_WAIT)."""
    manifest.edges.setdefault(edge_id, {})
    manifest.edges[edge_id].update(
        {
            "edge_id": edge_id,
            "project_id": project_id,
            "is_dependency": bool(is_dependency),
            "status": "running",
            "stage": "lock_wait",
            "started_at": _iso(ts),
        }
    )
    add_event(manifest, event_type="edge_started", ts=ts, edge_id=edge_id, payload={"project_id": project_id})


def edge_stage(
    manifest: AtlasManifest,
    *,
    edge_id: str,
    stage: str,
    ts: datetime,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Registra uma transição da máquina de estados da aresta."""
    e = manifest.edges.setdefault(edge_id, {"edge_id": edge_id})
    e["stage"] = stage
    data = {"stage": stage}
    data.update(payload or {})
    add_event(manifest, event_type="edge_stage", ts=ts, edge_id=edge_id, payload=data)


def edge_finished(
    manifest: AtlasManifest,
    *,
    edge_id: str,
    ts: datetime,
    result: Dict[str, Any],
) -> None:
    """Registra a conclusão (success/skipped) de uma aresta."""
    e = manifest.edges.setdefault(edge_id, {"edge_id": edge_id})

    started_iso = e.get("started_at")
    started_dt = datetime.fromisoformat(started_iso) if started_iso else ts

    status = result.get("status", "success")
    e.update(
        {
            "status": status,
            "stage": "done",
            "finished_at": _iso(ts),
            "duration_ms": _ms_between(started_dt, ts),
            "summary": result.get("summary"),
            "commit": result.get("commit"),
            "command_source": result.get("command_source"),
            "lock_wait_ms": result.get("lock_wait_ms", 0),
            "metrics": result.get("metrics", {}) or {},
        }
    )
    add_event(
        manifest,
        event_type="edge_finished",
        ts=ts,
        edge_id=edge_id,
        payload={"status": status, "duration_ms": e["duration_ms"]},
    )


def edge_failed(
    manifest: AtlasManifest,
    *,
    edge_id: str,
    ts: datetime,
    error: Dict[str, Any],
) -> None:
    """Marca a aresta como FAILED e associa o AtlasErrorPayload serializado."""
    e = manifest.edges.setdefault(edge_id, {"edge_id": edge_id})
    e.update({"status": "failed", "stage": "failed", "finished_at": _iso(ts), "error": error})
    add_event(manifest, event_type="edge_failed", ts=ts, edge_id=edge_id, payload={"error": error})


def run_finished(
    manifest: AtlasManifest,
    *,
    ts: datetime,
    status: str,
    payload: Optional[Dict[str, Any]] = None,
) -> None:
    """Fecha a run (`success` ou `failed`) e emite `run_finished`/`run_failed`."""
    manifest.run["status"] = status
    manifest.run["finished_at"] = _iso(ts)
    event_type = "run_finished" if status == "success" else "run_failed"
    add_event(manifest, event_type=event_type, ts=ts, payload=payload)


def save_manifest(manifest: AtlasManifest, path: Path) -> None:
    """Persiste o Manifest em JSON determinístico (chaves ordenadas)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(manifest.to_dict(), ensure_ascii=False, indent=2, sort_keys=True),
        encoding="utf-8",
    )


def load_manifest(path: Path) -> AtlasManifest:
    data = json.loads(path.read_text(encoding="utf-8"))
    return AtlasManifest.from_dict(data)
