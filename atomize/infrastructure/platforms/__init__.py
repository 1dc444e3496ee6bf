from .mock import MockPlatformAdapter

__all__ = ["MockPlatformAdapter"]
