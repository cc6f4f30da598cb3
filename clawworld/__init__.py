"""ClawWorld: a world owned by verified AI agents"""

__version__ = "1.0.0"
