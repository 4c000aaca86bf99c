"""
Rastreabilidade forense do Atlas CI.

Este pacote expõe o Manifest v1 de runs de build: metadados da run, hash da
configuração, estado por aresta e Event Log ordenado. Toda mutação ocorre
por chamadas explícitas; nada é inferido.
"""

from .manifest import (
    AtlasManifest,
    add_event,
    create_manifest,
    edge_failed,
    edge_finished,
    edge_stage,
    edge_started,
    load_manifest,
    run_finished,
    save_manifest,
)

__all__ = [
    "AtlasManifest",
    "add_event",
    "create_manifest",
    "edge_failed",
    "edge_finished",
    "edge_stage",
    "edge_started",
    "load_manifest",
    "run_finished",
    "save_manifest",
]
