"""API: camada de borda HTTP.

Responsabilidades:
- Receber webhooks assinados e consultas administrativas
- Validar assinaturas e payloads (pydantic)
- Delegar ao bot (app.bot.ZapBot)

Subpastas:
- routes/: endpoints HTTP (health, webhook, admin)

NÃO PODE conter: FSM, regras de sessão, despacho de comandos.
"""
