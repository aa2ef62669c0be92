"""Submit signed Stellar transactions to Horizon, with error types for verification."""

__version__ = "0.1.0"
__all__ = ["submission", "verification"]