"""
Exports públicos do módulo fsm/types.

Tipos de registro de transição da conexão.
"""

from fsm.types.transition import StateTransition, TransitionResult

__all__ = [
    "StateTransition",
    "TransitionResult",
]
