"""Cache engine internals: configuration, logging, storage and sweeping."""
