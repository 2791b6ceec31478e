"""Notificações assinadas de saída (webhook de ciclo de vida).

Cada notificação leva o corpo JSON canônico assinado nos headers
``x-webhook-*`` e, no próprio corpo, um envelope JWT com o HMAC do token
para destinatários que validam as duas camadas.

Entrega é best-effort: falha final é logada e ``notify`` retorna False.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from app.infra.crypto.signature import canonical_json
from app.infra.http.client import HttpError

if TYPE_CHECKING:
    from app.infra.crypto.signature import WebhookAuthenticator
    from app.infra.http.client import HttpClient

logger = logging.getLogger(__name__)

ENVELOPE_SIGNATURE_HEADER = "x-webhook-envelope-signature"


class OutboundNotifier:
    """Envia eventos para a URL de webhook configurada.

    Args:
        url: Destino (vazio desativa o notifier)
        authenticator: Assinador HMAC/JWT
        http_client: Cliente HTTP com retentativas
    """

    def __init__(
        self,
        url: str,
        authenticator: WebhookAuthenticator,
        http_client: HttpClient,
    ) -> None:
        self._url = url
        self._authenticator = authenticator
        self._http = http_client

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def notify(self, event: str, data: dict[str, Any]) -> bool:
        if not self.enabled:
            return False

        envelope = self._authenticator.create_envelope(event, data)
        body = canonical_json({"event": event, "data": data, "token": envelope.token})
        headers = {
            "content-type": "application/json",
            ENVELOPE_SIGNATURE_HEADER: envelope.signature,
            **self._authenticator.security_headers(body),
        }
        try:
            response = await self._http.post(self._url, content=body.encode("utf-8"), headers=headers)
        except HttpError as exc:
            logger.warning(
                "outbound_webhook_failed",
                extra={"webhook_event": event, "status_code": exc.status_code},
            )
            return False
        logger.info(
            "outbound_webhook_sent",
            extra={"webhook_event": event, "status_code": response.status_code},
        )
        return True
