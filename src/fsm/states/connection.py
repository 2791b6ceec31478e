"""
Estados da conexão com o WhatsApp.

Um único processo mantém uma única sessão; estes são os estados
que essa sessão pode assumir durante seu ciclo de vida.
"""

from enum import StrEnum


class ConnectionState(StrEnum):
    """
    Estados da sessão WhatsApp.

    Estados não-terminais:
        - DISCONNECTED: Sem sessão (inicial, ou após destroy/logout)
        - AWAITING_CREDENTIAL: QR code emitido, aguardando leitura
        - AUTHENTICATING: QR lido, handshake em andamento
        - CONNECTED: Sessão pronta para enviar e receber
        - RECONNECTING: Backoff em andamento após queda ou probe falho

    Estado terminal:
        - FAILED: Tentativas de reconexão esgotadas; apenas initialize()
          reinicia a máquina
    """

    DISCONNECTED = "DISCONNECTED"
    AWAITING_CREDENTIAL = "AWAITING_CREDENTIAL"
    AUTHENTICATING = "AUTHENTICATING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"

    FAILED = "FAILED"

    def __str__(self) -> str:
        return self.value


TERMINAL_STATES: frozenset[ConnectionState] = frozenset({ConnectionState.FAILED})

DEFAULT_INITIAL_STATE: ConnectionState = ConnectionState.DISCONNECTED


def is_terminal(state: ConnectionState) -> bool:
    """Verifica se o estado é terminal."""
    return state in TERMINAL_STATES


def is_valid_state(state: ConnectionState) -> bool:
    """Verifica se o valor é um ConnectionState válido."""
    return isinstance(state, ConnectionState)
