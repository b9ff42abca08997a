from .client import CollectorClient, CollectorError

__all__ = ["CollectorClient", "CollectorError"]
