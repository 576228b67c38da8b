"""
agentsync -- encrypted settings sync for AI coding assistants.

Collects the config trees of OpenCode, Claude Code, Codex and Gemini CLI
into one passphrase-sealed AES-GCM envelope. The envelope lives in a
private GitHub Gist so every device can pull the same setup.
"""

__version__ = "0.1.0"
