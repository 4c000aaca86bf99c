"""Execução de comandos de build com timeout duro (ProcessRunner v1).

Responsabilidades:
- gravar o comando literal em um arquivo temporário de comando antes de
  executar (scripts multi-linha e sensíveis a aspas sobrevivem intactos)
- anexar stdout e stderr ao MESMO log de texto da task
- impor timeout de relógio: o processo roda em sessão/grupo próprio e, ao
  estourar, o grupo inteiro recebe SIGTERM e, após `kill_grace_ms`, SIGKILL
- permitir destruição forçada de um comando em andamento (`destroy`)

Limites explícitos (v1):
- NÃO interpreta a saída do build
- NÃO faz retry
- NÃO decide o diretório do log (recebe o caminho pronto)
"""

from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Set, Union

from atlas_ci.core.errors import build_execution_failed


PathLike = Union[str, Path]


@dataclass(frozen=True)
class ProcessOutcome:
    """Resultado de uma execução de comando."""
    exit_code: Optional[int]
    timed_out: bool
    destroyed: bool
    duration_ms: int
    log_path: str
    command_file: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0 and not self.timed_out and not self.destroyed

    def to_dict(self) -> Dict[str, object]:
        return {
            "exit_code": self.exit_code,
            "timed_out": self.timed_out,
            "destroyed": self.destroyed,
            "duration_ms": self.duration_ms,
            "log_path": self.log_path,
            "command_file": self.command_file,
        }


class ProcessRunner:
    """Lança comandos externos destrutíveis, com saída teeada para o log da task."""

    def __init__(self, *, shell: str = "/bin/bash", kill_grace_ms: int = 5_000):
        self.shell = shell
        self.kill_grace_ms = kill_grace_ms
        self._running: Dict[str, subprocess.Popen] = {}
        self._destroyed: Set[str] = set()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Execução
    # ------------------------------------------------------------------
    def run(
        self,
        *,
        command: str,
        working_dir: PathLike,
        log_path: PathLike,
        timeout_ms: int,
        command_file: PathLike,
        run_key: Optional[str] = None,
    ) -> ProcessOutcome:
        command_file = Path(command_file)
        log_path = Path(log_path)
        run_key = run_key or str(command_file)

        command_file.parent.mkdir(parents=True, exist_ok=True)
        command_file.write_text(command if command.endswith("\n") else command + "\n", encoding="utf-8")
        command_file.chmod(0o700)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        started = time.monotonic()
        timed_out = False
        with log_path.open("ab") as log:
            proc = subprocess.Popen(
                [self.shell, str(command_file)],
                cwd=str(working_dir),
                stdin=subprocess.DEVNULL,
                stdout=log,
                stderr=subprocess.STDOUT,
                start_new_session=True,
            )
            with self._lock:
                self._running[run_key] = proc
            try:
                proc.wait(timeout=timeout_ms / 1000.0)
            except subprocess.TimeoutExpired:
                timed_out = True
                self._terminate(proc)
            finally:
                with self._lock:
                    self._running.pop(run_key, None)
                    destroyed = run_key in self._destroyed
                    self._destroyed.discard(run_key)

        return ProcessOutcome(
            exit_code=proc.returncode,
            timed_out=timed_out,
            destroyed=destroyed and not timed_out,
            duration_ms=int((time.monotonic() - started) * 1000),
            log_path=str(log_path),
            command_file=str(command_file),
        )

    def run_or_raise(self, *, project_id: int, **kwargs) -> ProcessOutcome:
        """Como `run`, mas qualquer saída != sucesso vira `BuildExecutionError`."""
        outcome = self.run(**kwargs)
        if not outcome.succeeded:
            raise build_execution_failed(
                project_id=project_id,
                exit_code=outcome.exit_code,
                timed_out=outcome.timed_out,
                destroyed=outcome.destroyed,
                log_path=outcome.log_path,
            )
        return outcome

    # ------------------------------------------------------------------
    # Destruição
    # ------------------------------------------------------------------
    def is_running(self, run_key: str) -> bool:
        with self._lock:
            return run_key in self._running

    def destroy(self, run_key: str) -> bool:
        """Encerra à força o comando `run_key`; False se não está em execução."""
        with self._lock:
            proc = self._running.get(run_key)
            if proc is None:
                return False
            self._destroyed.add(run_key)
        self._terminate(proc)
        return True

    def _terminate(self, proc: subprocess.Popen) -> None:
        # o processo é líder da própria sessão: pgid == pid
        self._signal_group(proc, signal.SIGTERM)
        try:
            proc.wait(timeout=self.kill_grace_ms / 1000.0)
        except subprocess.TimeoutExpired:
            pass
        # filhos que ignoraram o SIGTERM sobrevivem ao líder
        self._signal_group(proc, signal.SIGKILL)
        proc.wait()

    @staticmethod
    def _signal_group(proc: subprocess.Popen, sig: int) -> None:
        try:
            os.killpg(proc.pid, sig)
        except ProcessLookupError:
            return
