"""Transaction submission to Horizon with retries, error categorisation and logging."""

__all__ = ["errors", "logs", "models", "service"]