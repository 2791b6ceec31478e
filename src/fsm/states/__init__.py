"""
Exports públicos do módulo fsm/states.

Estados da conexão com o WhatsApp.
"""

from fsm.states.connection import (
    DEFAULT_INITIAL_STATE,
    TERMINAL_STATES,
    ConnectionState,
    is_terminal,
    is_valid_state,
)

__all__ = [
    "DEFAULT_INITIAL_STATE",
    "TERMINAL_STATES",
    "ConnectionState",
    "is_terminal",
    "is_valid_state",
]
