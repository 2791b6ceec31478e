"""Webhook de entrada."""
