"""App: coração do sistema: orquestração, sessão e infraestrutura.

Subpastas:
- bootstrap/: composition root (factories, inicialização, wiring)
- sessions/: ciclo de vida da sessão WhatsApp (FSM, QR, reconexão)
- commands/: registro, despacho e comandos embutidos
- pipeline/: middlewares encadeados por evento
- plugins/: contrato, gerenciador e carregador de plugins
- services/: serviços de aplicação (rate limiter)
- infra/: implementações concretas de IO (bridge, Redis, HTTP, assinatura)
- protocols/: contratos/interfaces
- domain/: modelos de mensagem e conversa
- observability/: correlation_id e métricas via log
- constants/: constantes da aplicação

Padrão: app executa; api adapta; fsm governa; utils apoia.
"""
