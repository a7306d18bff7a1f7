"""ccswitch: Claude Code / Codex / iFlow の接続先切替CLI。"""

__version__ = "0.4.0"
