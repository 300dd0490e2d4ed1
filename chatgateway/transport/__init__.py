"""SSE transport: emitter, queue transport and the HTTP app."""

from .emitter import DEFAULT_KEEPALIVE_INTERVAL, EventEmitter, QueueTransport, Transport

__all__ = [
    "DEFAULT_KEEPALIVE_INTERVAL",
    "EventEmitter",
    "QueueTransport",
    "Transport",
]
