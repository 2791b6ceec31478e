"""Rotas administrativas somente leitura."""
