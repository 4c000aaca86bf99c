"""Resolução do comando de build de uma aresta (v1).

Duas peças:

- `DefaultCommandTable`: tabela de estratégias indexada por `Project.build_type`
  (maven, gradle, npm, golang, python, docker). Substitui a hierarquia de
  providers por tipo de build: cada tipo contribui apenas com suas linhas de
  comando padrão, e a configuração (`build.default_commands`) pode sobrescrever
  ou acrescentar tipos.
- `BuildCommandResolver`: templating best-effort de placeholders `${nome}`.
  Placeholders desconhecidos permanecem literais; variáveis de shell (`$HOME`,
  `$$`, `${HOME:-x}`) nunca são tocadas.

Placeholders reconhecidos: projectDir, projectId, projectName, branch, taskId,
jobLog, commit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

from atlas_ci.core.errors import no_default_build_command
from atlas_ci.core.pipeline.types import Project


PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")

BUILTIN_DEFAULT_COMMANDS: Dict[str, Tuple[str, ...]] = {
    "maven": ("mvn -f ${projectDir}/pom.xml clean install -DskipTests -Dmaven.test.skip=true",),
    "gradle": ("cd ${projectDir}", "./gradlew clean build -x test"),
    "npm": ("cd ${projectDir}", "npm install", "npm run build"),
    "golang": ("cd ${projectDir}", "go mod download", "go build ./..."),
    "python": ("cd ${projectDir}", "python -m pip wheel --no-deps -w dist ."),
    "docker": ("cd ${projectDir}", "docker build -t ${projectName} ."),
}

SOURCE_OVERRIDE = "override"
SOURCE_DEFAULT = "default"


def is_blank(command: Optional[str]) -> bool:
    return command is None or not command.strip()


class DefaultCommandTable:
    """Linhas de comando padrão por tipo de build (capability-indexed)."""

    def __init__(self, overrides: Optional[Mapping[str, Iterable[str]]] = None):
        table = {k: tuple(v) for k, v in BUILTIN_DEFAULT_COMMANDS.items()}
        for build_type, lines in (overrides or {}).items():
            table[build_type.lower()] = tuple(lines)
        self._table = table

    def supports(self, build_type: Optional[str]) -> bool:
        return bool(build_type) and build_type.lower() in self._table

    def lines_for(self, build_type: Optional[str]) -> Optional[Tuple[str, ...]]:
        if not build_type:
            return None
        return self._table.get(build_type.lower())

    def script_for(self, build_type: Optional[str]) -> Optional[str]:
        """Script padrão (fail-fast via `set -e`), ou None se o tipo não é conhecido."""
        lines = self.lines_for(build_type)
        if not lines:
            return None
        return "\n".join(("set -e",) + lines)


@dataclass(frozen=True)
class ResolvedCommand:
    command: str
    source: str


class BuildCommandResolver:
    """Produz a linha de comando literal a executar para um projeto."""

    def __init__(self, table: Optional[DefaultCommandTable] = None):
        self.table = table or DefaultCommandTable()

    def resolve(self, override_command: Optional[str], placeholders: Mapping[str, object]) -> Optional[str]:
        """Substitui placeholders do comando customizado.

        Retorna None para comando em branco: o chamador decide o fallback.
        Função pura.
        """
        if is_blank(override_command):
            return None

        def _sub(match: "re.Match[str]") -> str:
            name = match.group(1)
            value = placeholders.get(name)
            if value is None:
                return match.group(0)
            return str(value)

        return PLACEHOLDER_PATTERN.sub(_sub, override_command)

    def resolve_effective(
        self,
        override_command: Optional[str],
        project: Project,
        placeholders: Mapping[str, object],
    ) -> ResolvedCommand:
        """Comando customizado resolvido, senão o script padrão do `build_type`.

        Raises:
            EngineConfigurationError: comando em branco e tipo de build sem padrão.
        """
        resolved = self.resolve(override_command, placeholders)
        if resolved is not None:
            return ResolvedCommand(command=resolved, source=SOURCE_OVERRIDE)

        script = self.table.script_for(project.build_type)
        if script is None:
            raise no_default_build_command(project_id=project.id, build_type=project.build_type)
        return ResolvedCommand(command=self.resolve(script, placeholders), source=SOURCE_DEFAULT)


def build_placeholders(
    *,
    project: Project,
    project_dir: str,
    branch: str,
    task_id: int,
    job_log: str,
    commit: Optional[str] = None,
) -> Dict[str, object]:
    values: Dict[str, object] = {
        "projectDir": project_dir,
        "projectId": project.id,
        "projectName": project.name,
        "branch": branch,
        "taskId": task_id,
        "jobLog": job_log,
    }
    if commit:
        values["commit"] = commit
    return values
