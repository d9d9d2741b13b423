from .realtime_guard import register, unregister

__all__ = ["register", "unregister"]
