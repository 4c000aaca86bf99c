# src/atlas_ci/core/config/hashing.py
"""
Hashing canônico do Atlas CI.

Este módulo concentra a serialização JSON canônica usada em dois pontos
de rastreabilidade:
    - identidade da configuração efetiva de uma run (Manifest)
    - fingerprint do release descriptor entregue aos consumidores downstream

Política de hashing (v1):
    - JSON canônico: chaves ordenadas, separadores compactos, UTF-8
    - tuplas e sets são serializados como listas (sets ordenados)
    - `Path` e demais objetos não-JSON viram `str`
    - SHA-256, saída hexadecimal de 64 caracteres

Invariantes:
    - Estruturas equivalentes produzem o mesmo hash, independente da ordem
      original das chaves ou da ordem de inserção em sets
    - Nenhuma informação de runtime é incluída implicitamente
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict


def _normalize(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _normalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_normalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        return sorted((_normalize(v) for v in value), key=lambda v: json.dumps(v, sort_keys=True, default=str))
    if isinstance(value, Path):
        return str(value)
    return value


def canonical_json(value: Any) -> str:
    """Serializa `value` em JSON canônico (estável entre execuções)."""
    return json.dumps(
        _normalize(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def sha256_hex(value: Any) -> str:
    """SHA-256 hexadecimal do JSON canônico de `value`."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def compute_config_hash(config: Dict[str, Any]) -> str:
    """
    Gera o hash determinístico da configuração efetiva de build.

    Args:
        config (Dict[str, Any]): Configuração efetiva (já resolvida via deep-merge).

    Returns:
        str: Hash SHA-256 hexadecimal da configuração.

    Raises:
        TypeError: Se o objeto fornecido não for um dicionário.
    """
    if not isinstance(config, dict):
        raise TypeError(
            f"Config para hashing deve ser dict, recebido: {type(config).__name__}"
        )
    return sha256_hex(config)
