# src/atlas_ci/core/config/__init__.py

"""
Camada de configuração do Atlas CI.

Este pacote carrega, mescla, identifica e tipa a configuração de build
usada pelo orchestrator em cada nó do cluster.

Responsabilidades do pacote:
    - Carregamento de arquivos de configuração (defaults + overrides locais)
    - Resolução de configuração final via deep-merge determinístico
    - Geração de hash canônico para o Manifest
    - Projeção tipada e validada (`BuildSettings`)

Princípios fundamentais:
    - Configuração não contém lógica de build
    - Overrides são sempre explícitos
    - A mesma entrada sempre produz a mesma configuração final
"""

from .errors import (
    ConfigError,
    ConfigTypeConflictError,
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    InvalidSettingError,
    UnsupportedConfigFormatError,
)
from .hashing import canonical_json, compute_config_hash, sha256_hex
from .loader import load_config, load_config_with_hash
from .merge import deep_merge
from .settings import BuildSettings, DEFAULT_LOCK_NAMESPACE

__all__ = [
    "BuildSettings",
    "ConfigError",
    "ConfigTypeConflictError",
    "DEFAULT_LOCK_NAMESPACE",
    "DefaultsNotFoundError",
    "InvalidConfigRootTypeError",
    "InvalidSettingError",
    "UnsupportedConfigFormatError",
    "canonical_json",
    "compute_config_hash",
    "deep_merge",
    "load_config",
    "load_config_with_hash",
    "sha256_hex",
]
