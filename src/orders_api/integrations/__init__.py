"""Circuit breaker, retry executor and alert sinks."""
