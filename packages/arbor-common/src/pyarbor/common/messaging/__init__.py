from .bus import bus

__all__ = ["bus"]
