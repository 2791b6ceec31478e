"""
Regras de transição válidas entre estados da conexão.

Grafo dirigido: chave = estado de origem, valor = destinos permitidos.
Qualquer estado não-terminal pode voltar a DISCONNECTED (destroy ou
logout). FAILED só é alcançado a partir de RECONNECTING.
"""

from fsm.states.connection import TERMINAL_STATES, ConnectionState

TransitionMap = dict[ConnectionState, frozenset[ConnectionState]]

VALID_TRANSITIONS: TransitionMap = {
    # DISCONNECTED: sessão restaurada pode pular direto para AUTHENTICATING/CONNECTED
    ConnectionState.DISCONNECTED: frozenset({
        ConnectionState.AWAITING_CREDENTIAL,
        ConnectionState.AUTHENTICATING,
        ConnectionState.CONNECTED,
        ConnectionState.RECONNECTING,
    }),

    # AWAITING_CREDENTIAL: loop permitido a cada novo QR
    ConnectionState.AWAITING_CREDENTIAL: frozenset({
        ConnectionState.AWAITING_CREDENTIAL,
        ConnectionState.AUTHENTICATING,
        ConnectionState.CONNECTED,
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTED,
    }),

    # AUTHENTICATING: falha de auth volta a pedir QR
    ConnectionState.AUTHENTICATING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.AWAITING_CREDENTIAL,
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTED,
    }),

    ConnectionState.CONNECTED: frozenset({
        ConnectionState.RECONNECTING,
        ConnectionState.DISCONNECTED,
    }),

    # RECONNECTING: bridge pode exigir novo QR durante a reconexão
    ConnectionState.RECONNECTING: frozenset({
        ConnectionState.AWAITING_CREDENTIAL,
        ConnectionState.AUTHENTICATING,
        ConnectionState.CONNECTED,
        ConnectionState.FAILED,
        ConnectionState.DISCONNECTED,
    }),

    ConnectionState.FAILED: frozenset(),
}


def get_valid_targets(state: ConnectionState) -> frozenset[ConnectionState]:
    """
    Retorna os estados de destino válidos para um estado de origem.

    Args:
        state: Estado de origem

    Returns:
        Conjunto de estados de destino permitidos (vazio se terminal)
    """
    return VALID_TRANSITIONS.get(state, frozenset())


def is_transition_valid(from_state: ConnectionState, to_state: ConnectionState) -> bool:
    """Verifica se uma transição é permitida pelo grafo."""
    if from_state in TERMINAL_STATES:
        return False
    return to_state in get_valid_targets(from_state)


def validate_transition_map() -> list[str]:
    """
    Valida a integridade do mapa de transições.

    Verifica:
    - Todos os estados do enum estão no mapa
    - Estados terminais têm conjunto vazio
    - Todo estado terminal é alcançável

    Returns:
        Lista de erros encontrados (vazia se válido)
    """
    errors: list[str] = []

    for state in ConnectionState:
        if state not in VALID_TRANSITIONS:
            errors.append(f"Estado {state.name} ausente em VALID_TRANSITIONS")

    for state in TERMINAL_STATES:
        if VALID_TRANSITIONS.get(state, frozenset()):
            errors.append(f"Estado terminal {state.name} não deveria ter transições")
        if not any(state in targets for targets in VALID_TRANSITIONS.values()):
            errors.append(f"Estado terminal {state.name} inalcançável")

    return errors
