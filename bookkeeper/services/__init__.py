"""External services: local storage, sync outbox and remote backends."""
