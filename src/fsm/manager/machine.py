"""
Máquina de estados da conexão com o WhatsApp.

Valida cada transição contra VALID_TRANSITIONS e mantém um histórico
limitado para diagnóstico (/status). Não agenda timers nem emite
eventos: isso é responsabilidade do SessionManager.
"""

from collections import deque
from typing import Any

from fsm.states.connection import (
    DEFAULT_INITIAL_STATE,
    ConnectionState,
    is_terminal,
)
from fsm.transitions.rules import get_valid_targets, is_transition_valid
from fsm.types.transition import StateTransition, TransitionResult

DEFAULT_HISTORY_LIMIT = 100


class ConnectionStateMachine:
    """
    Máquina de estados da sessão.

    Attributes:
        current_state: Estado atual da máquina
        history: Últimas transições realizadas (mais antiga primeiro)
        transition_count: Total de transições desde o último reset
    """

    __slots__ = ("_current_state", "_history", "_session_name", "_transition_count")

    def __init__(
        self,
        initial_state: ConnectionState | None = None,
        session_name: str = "",
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self._current_state = initial_state or DEFAULT_INITIAL_STATE
        self._history: deque[StateTransition] = deque(maxlen=history_limit)
        self._session_name = session_name
        self._transition_count = 0

    @property
    def current_state(self) -> ConnectionState:
        """Estado atual da máquina."""
        return self._current_state

    @property
    def history(self) -> list[StateTransition]:
        """Histórico de transições (cópia para evitar mutação externa)."""
        return list(self._history)

    @property
    def transition_count(self) -> int:
        return self._transition_count

    @property
    def is_terminal(self) -> bool:
        """Verifica se está em estado terminal."""
        return is_terminal(self._current_state)

    def can_transition_to(self, target: ConnectionState) -> bool:
        """Verifica se pode transitar para o estado alvo."""
        return is_transition_valid(self._current_state, target)

    def transition(
        self,
        target: ConnectionState,
        trigger: str,
        metadata: dict[str, Any] | None = None,
    ) -> TransitionResult:
        """
        Tenta realizar uma transição de estado.

        Args:
            target: Estado de destino
            trigger: Identificador do gatilho (ex: 'qr', 'ready')
            metadata: Dados adicionais para auditoria (nunca PII)

        Returns:
            TransitionResult com sucesso/falha e dados da transição
        """
        if not is_transition_valid(self._current_state, target):
            return TransitionResult(
                success=False,
                error_reason=(
                    f"Transição inválida: {self._current_state.name} → {target.name}"
                ),
            )

        transition = StateTransition(
            from_state=self._current_state,
            to_state=target,
            trigger=trigger,
            metadata=metadata or {},
        )
        self._current_state = target
        self._history.append(transition)
        self._transition_count += 1
        return TransitionResult(success=True, transition=transition)

    def get_state_summary(self) -> dict[str, Any]:
        """Resumo do estado atual (seguro para logs e /status)."""
        return {
            "session_name": self._session_name,
            "current_state": self._current_state.name,
            "is_terminal": self.is_terminal,
            "transition_count": self._transition_count,
            "valid_targets": sorted(s.name for s in get_valid_targets(self._current_state)),
        }

    def get_history_summary(self) -> list[dict[str, Any]]:
        """Histórico em formato seguro para logs."""
        return [t.to_log_dict() for t in self._history]

    def reset(self) -> None:
        """
        Volta a DISCONNECTED e limpa o histórico.

        Único caminho de saída de FAILED (usado por initialize()).
        """
        self._current_state = DEFAULT_INITIAL_STATE
        self._history.clear()
        self._transition_count = 0
