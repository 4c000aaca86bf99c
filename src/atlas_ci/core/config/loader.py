# src/atlas_ci/core/config/loader.py
"""
Loader canônico de configuração do Atlas CI.

A configuração de build é resolvida a partir de:
    - um arquivo de defaults (obrigatório), versionado junto ao serviço
    - um arquivo local de overrides (opcional), específico do nó do cluster

Responsabilidades do módulo:
    - Carregar arquivos de configuração em YAML ou JSON
    - Validar o tipo raiz (dict)
    - Resolver a configuração final via deep-merge determinístico
    - Devolver, junto com a configuração, o hash canônico usado no Manifest

Limites explícitos:
    - Não converte valores para tipos de domínio (ver `settings.BuildSettings`)
    - Não persiste configuração ou hash
    - Não interage com Engine, coordinator ou locks
"""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import json
import yaml  # PyYAML

from .merge import deep_merge
from .hashing import compute_config_hash
from .errors import (
    DefaultsNotFoundError,
    InvalidConfigRootTypeError,
    UnsupportedConfigFormatError,
)


def _load_file(path: Path) -> Dict[str, Any]:
    """
    Carrega um arquivo de configuração e valida sua estrutura básica.

    Arquivos vazios são interpretados como dicionários vazios; o conteúdo
    raiz precisa ser um mapa chave-valor.

    Raises:
        DefaultsNotFoundError: Se o arquivo não existir.
        UnsupportedConfigFormatError: Se a extensão não for YAML/JSON.
        InvalidConfigRootTypeError: Se o conteúdo raiz não for um dicionário.
    """
    if not path.exists():
        raise DefaultsNotFoundError(f"Arquivo de defaults não encontrado: {path}")

    suffix = path.suffix.lower()
    with path.open("r", encoding="utf-8") as f:
        if suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(f)
        elif suffix == ".json":
            data = json.load(f)
        else:
            raise UnsupportedConfigFormatError(f"Formato não suportado: {path.suffix}")

    if data is None:
        data = {}

    if not isinstance(data, dict):
        raise InvalidConfigRootTypeError(
            f"Config root deve ser dict, recebido: {type(data).__name__}"
        )

    return data


def load_config_with_hash(
    *,
    defaults_path: str,
    local_path: Optional[str] = None,
) -> Tuple[Dict[str, Any], str]:
    """
    Carrega e resolve a configuração efetiva, devolvendo também seu hash.

    Política de resolução:
        - O arquivo de defaults é obrigatório
        - O arquivo local é opcional; quando presente tem prioridade
        - Um `local_path` informado mas inexistente é ignorado (nó sem overrides)

    Returns:
        Tuple[Dict[str, Any], str]: (configuração efetiva, hash SHA-256).
    """
    defaults = _load_file(Path(defaults_path))
    effective = defaults

    if local_path is not None:
        local_file = Path(local_path)
        if local_file.exists():
            effective = deep_merge(defaults, _load_file(local_file))

    return effective, compute_config_hash(effective)


def load_config(
    *,
    defaults_path: str,
    local_path: Optional[str] = None,
) -> Dict[str, Any]:
    """Carrega e resolve a configuração efetiva (sem o hash)."""
    config, _ = load_config_with_hash(defaults_path=defaults_path, local_path=local_path)
    return config
