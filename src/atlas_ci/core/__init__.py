# src/atlas_ci/core/__init__.py
"""
Core do Atlas CI.

Reúne o que é independente de backend: tipos e contratos do pipeline,
configuração, taxonomia de erros, orquestração e rastreabilidade.

Componentes principais:
    - config       → carregamento, merge, hashing e `BuildSettings`
    - pipeline     → tipos, protocolos de colaboradores e contexto da run
    - engine       → planner, coordinator e orchestrator
    - traceability → Manifest e Event Log da run

Limites explícitos:
    - Não implementa VCS nem persistência (consumidos via protocolos)
    - Não depende de um backend de lock específico
"""
