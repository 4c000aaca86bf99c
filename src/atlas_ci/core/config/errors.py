# src/atlas_ci/core/config/errors.py
"""
Exceções canônicas da camada de configuração do Atlas CI.

Este módulo define a hierarquia oficial de exceções utilizadas durante
o carregamento, merge e tipagem da configuração de build (timeouts,
diretórios de workspace, namespace de locks, políticas do engine).

As exceções aqui definidas representam **violações estruturais
explícitas** da configuração, e não falhas de build.

Invariantes:
    - Todas as exceções de configuração herdam de `ConfigError`
    - Nenhuma exceção representa falha de lock, VCS ou processo

Limites explícitos:
    - Não executa pipeline
    - Não realiza fallback ou recovery
"""


class ConfigError(Exception):
    """
    Exceção base para erros relacionados à configuração do Atlas CI.

    Permite captura genérica de erros de configuração e distinção clara
    entre falhas estruturais (antes da run começar) e falhas de execução
    (durante o build de uma aresta).
    """


class DefaultsNotFoundError(ConfigError):
    """
    Exceção levantada quando o arquivo de configuração base (defaults)
    não é encontrado no caminho especificado.

    Sem defaults não existe configuração efetiva válida: o loader não
    tenta inferir nem criar defaults automaticamente.
    """


class UnsupportedConfigFormatError(ConfigError):
    """
    Exceção levantada quando o formato do arquivo de configuração
    não é suportado pelo loader.

    Formatos suportados (v1):
        - YAML (.yaml, .yml)
        - JSON (.json)
    """


class InvalidConfigRootTypeError(ConfigError):
    """
    Exceção levantada quando o conteúdo raiz da configuração
    não é um dicionário (`dict`).
    """


class ConfigTypeConflictError(ConfigError):
    """
    Exceção levantada quando ocorre conflito de tipos durante o deep-merge.

    Exemplo de conflito:
        - base:     {"build": {"job_timeout_ms": 300000}}
        - override: {"build": "fast"}

    A mensagem sempre inclui o caminho pontuado da chave (`build`,
    `lock.poll_interval_ms`, ...), para que o operador saiba qual arquivo
    corrigir.
    """


class InvalidSettingError(ConfigError):
    """
    Exceção levantada quando um valor da configuração efetiva não pode ser
    convertido para `BuildSettings` (ex.: timeout negativo, diretório vazio,
    tabela de comandos padrão com linhas não textuais).
    """
