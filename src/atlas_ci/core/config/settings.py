# src/atlas_ci/core/config/settings.py
"""
Visão tipada da configuração de build (`BuildSettings`).

A configuração efetiva continua sendo um `dict` puro (ver `loader`); este
módulo apenas a projeta em uma estrutura imutável e validada, consumida pelo
coordinator, pelo ProcessRunner e pelos mutex.

Chaves reconhecidas (v1):

    build:
      workspace_dir: ./workspace/sources      # working copies, uma por projeto
      job_log_dir: ./workspace/logs           # <task_id>.log (+ manifest)
      tmp_command_dir: ./workspace/tmp        # arquivos temporários de comando
      job_timeout_ms: 300000                  # timeout duro do processo de build
      shared_dependency_try_timeout_ms: 0     # sondagem rápida do mutex
      shared_dependency_wait_timeout_ms: ~    # espera longa (default: job_timeout_ms)
      kill_grace_ms: 5000                     # SIGTERM -> SIGKILL
      shell: /bin/bash
      verify_concurrent_build: false
      default_commands: {<build_type>: [linhas...]}
    lock:
      namespace: ci.build.dependency.
      poll_interval_ms: 200
      lease_ttl_ms: ~                         # default: job_timeout_ms + 60000
    engine:
      parallel_dependencies: false
      max_workers: 4
    status:
      ttl_ms: 3600000

Valores inválidos levantam `InvalidSettingError` antes de qualquer run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import InvalidSettingError


DEFAULT_LOCK_NAMESPACE = "ci.build.dependency."
_LEASE_MARGIN_MS = 60_000

_MISSING = object()


def _lookup(config: Dict[str, Any], dotted: str) -> Any:
    node: Any = config
    for part in dotted.split("."):
        if not isinstance(node, dict) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _as_ms(config: Dict[str, Any], dotted: str, default: Optional[int]) -> Optional[int]:
    raw = _lookup(config, dotted)
    if raw is _MISSING or raw is None:
        return default
    if isinstance(raw, bool) or not isinstance(raw, (int, float)):
        raise InvalidSettingError(f"'{dotted}' deve ser numérico (ms), recebido: {raw!r}")
    if raw < 0:
        raise InvalidSettingError(f"'{dotted}' não pode ser negativo: {raw!r}")
    return int(raw)


def _as_bool(config: Dict[str, Any], dotted: str, default: bool) -> bool:
    raw = _lookup(config, dotted)
    if raw is _MISSING or raw is None:
        return default
    if not isinstance(raw, bool):
        raise InvalidSettingError(f"'{dotted}' deve ser booleano, recebido: {raw!r}")
    return raw


def _as_str(config: Dict[str, Any], dotted: str, default: str) -> str:
    raw = _lookup(config, dotted)
    if raw is _MISSING or raw is None:
        return default
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidSettingError(f"'{dotted}' deve ser texto não vazio, recebido: {raw!r}")
    return raw


def _as_commands(config: Dict[str, Any]) -> Dict[str, Tuple[str, ...]]:
    raw = _lookup(config, "build.default_commands")
    if raw is _MISSING or raw is None:
        return {}
    if not isinstance(raw, dict):
        raise InvalidSettingError("'build.default_commands' deve ser um mapa build_type -> [linhas]")

    table: Dict[str, Tuple[str, ...]] = {}
    for build_type, lines in raw.items():
        if isinstance(lines, str):
            lines = [lines]
        if not isinstance(lines, list) or not all(isinstance(x, str) for x in lines):
            raise InvalidSettingError(
                f"'build.default_commands.{build_type}' deve ser uma lista de linhas de comando"
            )
        table[str(build_type).lower()] = tuple(lines)
    return table


@dataclass(frozen=True)
class BuildSettings:
    """Configuração de build resolvida e validada (imutável)."""

    workspace_dir: Path
    job_log_dir: Path
    tmp_command_dir: Path
    job_timeout_ms: int = 300_000
    shared_dependency_try_timeout_ms: int = 0
    shared_dependency_wait_timeout_ms: int = 300_000
    kill_grace_ms: int = 5_000
    shell: str = "/bin/bash"
    verify_concurrent_build: bool = False
    default_commands: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    lock_namespace: str = DEFAULT_LOCK_NAMESPACE
    lock_poll_interval_ms: int = 200
    lock_lease_ttl_ms: int = 300_000 + _LEASE_MARGIN_MS
    parallel_dependencies: bool = False
    max_workers: int = 4
    status_ttl_ms: int = 3_600_000

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "BuildSettings":
        if not isinstance(config, dict):
            raise InvalidSettingError(f"Config deve ser dict, recebido: {type(config).__name__}")

        job_timeout = _as_ms(config, "build.job_timeout_ms", 300_000)
        if job_timeout == 0:
            raise InvalidSettingError("'build.job_timeout_ms' deve ser maior que zero")

        max_workers = _as_ms(config, "engine.max_workers", 4)
        if max_workers < 1:
            raise InvalidSettingError("'engine.max_workers' deve ser >= 1")

        poll = _as_ms(config, "lock.poll_interval_ms", 200)
        if poll == 0:
            raise InvalidSettingError("'lock.poll_interval_ms' deve ser maior que zero")

        return cls(
            workspace_dir=Path(_as_str(config, "build.workspace_dir", "./workspace/sources")),
            job_log_dir=Path(_as_str(config, "build.job_log_dir", "./workspace/logs")),
            tmp_command_dir=Path(_as_str(config, "build.tmp_command_dir", "./workspace/tmp")),
            job_timeout_ms=job_timeout,
            shared_dependency_try_timeout_ms=_as_ms(config, "build.shared_dependency_try_timeout_ms", 0),
            shared_dependency_wait_timeout_ms=_as_ms(
                config, "build.shared_dependency_wait_timeout_ms", job_timeout
            ),
            kill_grace_ms=_as_ms(config, "build.kill_grace_ms", 5_000),
            shell=_as_str(config, "build.shell", "/bin/bash"),
            verify_concurrent_build=_as_bool(config, "build.verify_concurrent_build", False),
            default_commands=_as_commands(config),
            lock_namespace=_as_str(config, "lock.namespace", DEFAULT_LOCK_NAMESPACE),
            lock_poll_interval_ms=poll,
            lock_lease_ttl_ms=_as_ms(config, "lock.lease_ttl_ms", job_timeout + _LEASE_MARGIN_MS),
            parallel_dependencies=_as_bool(config, "engine.parallel_dependencies", False),
            max_workers=max_workers,
            status_ttl_ms=_as_ms(config, "status.ttl_ms", 3_600_000),
        )

    # ------------------------------------------------------------------
    # Paths derivados
    # ------------------------------------------------------------------
    def job_log(self, task_id: int) -> Path:
        """Log de texto único da task (saída de todos os builds da run)."""
        return self.job_log_dir / f"{task_id}.log"

    def manifest_path(self, task_id: int) -> Path:
        return self.job_log_dir / f"{task_id}.manifest.json"

    def project_source_dir(self, project_name: str) -> Path:
        """Working copy do projeto, derivada do nome (compartilhada entre runs)."""
        return self.workspace_dir / project_name

    def tmp_command_file(self, task_id: int, project_id: int) -> Path:
        return self.tmp_command_dir / str(task_id) / f"{project_id}.sh"
