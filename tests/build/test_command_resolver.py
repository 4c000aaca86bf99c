# tests/build/test_command_resolver.py
"""
Testes da resolução do comando de build.

Os testes asseguram que:
- placeholders conhecidos são substituídos e desconhecidos permanecem literais
- variáveis de shell nunca são tocadas
- comando em branco delega ao script padrão do tipo de build
- a configuração sobrescreve ou acrescenta tipos de build
"""

import pytest

from atlas_ci.build.command import (
    BuildCommandResolver,
    DefaultCommandTable,
    SOURCE_DEFAULT,
    SOURCE_OVERRIDE,
    build_placeholders,
)
from atlas_ci.core.exceptions import EngineConfigurationError
from atlas_ci.core.pipeline.types import Project

PROJECT = Project(id=7, name="svc", vcs_kind="git", http_url="https://git.local/svc.git", build_type="npm")


def _placeholders(commit=None):
    return build_placeholders(
        project=PROJECT,
        project_dir="/ws/svc",
        branch="develop",
        task_id=3,
        job_log="/logs/3.log",
        commit=commit,
    )


def test_known_placeholders_are_substituted():
    resolver = BuildCommandResolver()
    out = resolver.resolve(
        "cd ${projectDir} && ./build.sh ${projectId} ${projectName} ${branch} ${taskId} >> ${jobLog}",
        _placeholders(),
    )
    assert out == "cd /ws/svc && ./build.sh 7 svc develop 3 >> /logs/3.log"


def test_unknown_placeholders_and_shell_variables_stay_literal():
    resolver = BuildCommandResolver()
    out = resolver.resolve('echo ${nope} $HOME $$ ${HOME:-x} "${commit}"', _placeholders())
    assert out == 'echo ${nope} $HOME $$ ${HOME:-x} "${commit}"'
    assert resolver.resolve("git log ${commit}", _placeholders(commit="abc")) == "git log abc"


@pytest.mark.parametrize("blank", [None, "", "   ", "\n\t"])
def test_blank_command_resolves_to_none(blank):
    assert BuildCommandResolver().resolve(blank, _placeholders()) is None


def test_effective_command_prefers_override():
    resolved = BuildCommandResolver().resolve_effective("make ${branch}", PROJECT, _placeholders())
    assert resolved.command == "make develop"
    assert resolved.source == SOURCE_OVERRIDE


def test_effective_command_falls_back_to_default_script():
    resolved = BuildCommandResolver().resolve_effective("  ", PROJECT, _placeholders())
    assert resolved.source == SOURCE_DEFAULT
    assert resolved.command.splitlines() == ["set -e", "cd /ws/svc", "npm install", "npm run build"]


def test_configured_table_overrides_and_extends_build_types():
    table = DefaultCommandTable({"NPM": ["pnpm install", "pnpm build"], "bazel": ["bazel build //..."]})
    assert table.lines_for("npm") == ("pnpm install", "pnpm build")
    assert table.supports("bazel")
    assert table.supports("maven")
    assert not table.supports(None)
    assert table.script_for("unknown") is None


def test_missing_default_is_configuration_error():
    project = Project(id=8, name="x", vcs_kind="git", http_url="u", build_type=None)
    with pytest.raises(EngineConfigurationError) as exc:
        BuildCommandResolver().resolve_effective(None, project, _placeholders())
    assert exc.value.details["code"] == "NO_DEFAULT_BUILD_COMMAND"
