# src/atlas_ci/core/config/merge.py
"""
Deep-merge canônico da configuração de build.

Política de merge (v1):
    - dict → merge recursivo por chave
    - list → sobrescrita total (ex.: `build.default_commands.maven` é
      substituída inteira, nunca intercalada com as linhas padrão)
    - escalar → sobrescrita direta
    - None no override → sobrescrita direta (desliga explicitamente um valor)
    - conflito de tipos → `ConfigTypeConflictError` com o caminho da chave

Int e float são tratados como o mesmo tipo numérico: um timeout declarado
como `300000` nos defaults pode ser sobrescrito por `1.5e5` localmente.
`bool` NÃO é numérico aqui (`fail_fast: 1` é conflito).

Nenhum input é mutado.
"""

from copy import deepcopy
from typing import Any, Dict, Tuple

from .errors import ConfigTypeConflictError


def _kind(value: Any) -> str:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, dict):
        return "dict"
    if isinstance(value, list):
        return "list"
    return type(value).__name__


def _merge(base: Dict[str, Any], override: Dict[str, Any], path: Tuple[str, ...]) -> Dict[str, Any]:
    result: Dict[str, Any] = deepcopy(base)

    for key, override_value in override.items():
        key_path = path + (str(key),)

        if key not in result or result[key] is None or override_value is None:
            result[key] = deepcopy(override_value)
            continue

        base_value = result[key]
        base_kind = _kind(base_value)
        override_kind = _kind(override_value)

        if base_kind == "dict" and override_kind == "dict":
            result[key] = _merge(base_value, override_value, key_path)
            continue

        if base_kind != override_kind:
            raise ConfigTypeConflictError(
                f"Conflito de tipo na chave '{'.'.join(key_path)}': "
                f"{type(base_value).__name__} vs {type(override_value).__name__}"
            )

        result[key] = deepcopy(override_value)

    return result


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Realiza um deep-merge determinístico entre defaults e overrides.

    Args:
        base (Dict[str, Any]): Configuração base (ex.: config.defaults.yaml).
        override (Dict[str, Any]): Overrides explícitos (ex.: config.local.yaml).

    Returns:
        Dict[str, Any]: Nova configuração resultante do deep-merge.

    Raises:
        ConfigTypeConflictError: Se ocorrer conflito de tipo entre base e override.
    """
    if not isinstance(base, dict) or not isinstance(override, dict):
        raise ConfigTypeConflictError(
            f"Deep-merge requer dicts no nível raiz, recebido: "
            f"{type(base).__name__} vs {type(override).__name__}"
        )
    return _merge(base, override, ())
