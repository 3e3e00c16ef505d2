"""civicsync Shared Module.

This package contains shared utilities, constants, and error handling used across civicsync.
"""

__all__ = ["cache_utils", "constants", "error_messages", "errors", "logging"]
