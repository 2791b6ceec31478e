"""
Exports públicos do módulo fsm/manager.
"""

from fsm.manager.machine import DEFAULT_HISTORY_LIMIT, ConnectionStateMachine

__all__ = [
    "DEFAULT_HISTORY_LIMIT",
    "ConnectionStateMachine",
]
