# src/atlas_ci/__init__.py
"""
Atlas CI: orchestrator de builds com dependências para CI.

Dado um projeto que depende (transitivamente) de outros módulos buildados
internamente, builda cada dependência antes do projeto primário, garante que
dois nós do cluster nunca buildem o mesmo projeto ao mesmo tempo, suporta
rollback para commits registrados e entrega um release descriptor
determinístico ao consumidor pós-build.

Arquitetura em alto nível:
    - core.config       → configuração (YAML/JSON), merge e hashing
    - core.pipeline     → tipos, contratos de colaboradores e contexto da run
    - core.engine       → planner, coordinator e orchestrator
    - core.traceability → Manifest e Event Log
    - build             → resolução de comandos e execução de processos
    - locking           → mutex por projeto e quadro de status
    - persistence       → stores de referência (memória e SQLAlchemy)
    - release           → release descriptor e hook pós-build
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
