"""HTTP API — aiohttp application for webhooks, health and stats."""

from alertrelay.api.app import create_web_app, start_web_server

__all__ = ["create_web_app", "start_web_server"]
