"""Keep SillyTavern Lore Books and Characters in sync with a local file tree."""

__version__ = "0.1.0"
