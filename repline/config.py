"""
Configuration management for repline.
Handles user settings, history location and persistent configuration.
"""

import copy
import json
import os
import platform
from pathlib import Path
from typing import Dict, Any, Optional

from dotenv import load_dotenv, find_dotenv

from repline.output import print_warning

# Load .env file if it exists - search from the current directory upwards
_dotenv_path = find_dotenv(usecwd=True)
if _dotenv_path:
    load_dotenv(_dotenv_path, override=False)


class Config:
    """Manages repline configuration and settings."""

    DEFAULT_CONFIG = {
        "startup_mode": "r",  # "r" (interpreter) or "shell"
        "reprex": False,
        "reprex_comment": "#> ",
        "autoformat": False,
        "history_dir": None,  # Defaults to <config_dir>/history
        "history_disabled": False,
        "history_forget": {
            "enabled": False,
            "delay": 2,
            "on_exit_only": False,
        },
        "spinner": {
            "frames": "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏",
            "interval_ms": 80,
        },
        "prompt": {
            "format": "{status}{elapsed}{mode}>>> ",
            "shell_format": "[{cwd}] $ ",
            "continuation": "... ",
            "status_success": "",
            "status_error": "✗ ",
            "elapsed_threshold_ms": 5000,
        },
        "shell": None,  # Auto-detected
        "confirm_destructive": True,
    }

    def __init__(self, config_dir: Optional[str] = None):
        """
        Initialize config system.

        Args:
            config_dir: Override default config directory
        """
        if config_dir:
            self.config_dir = Path(config_dir).expanduser()
        else:
            self.config_dir = Path.home() / ".repline"

        self.config_file = self.config_dir / "config.json"

        self._ensure_directories()
        self.settings = self._load_config()
        self._load_env_vars()

    def _ensure_directories(self):
        """Create config directory if it doesn't exist."""
        self.config_dir.mkdir(parents=True, exist_ok=True)

    def _detect_shell(self) -> str:
        """Auto-detect the user's default shell."""
        if platform.system() == "Windows":
            from shutil import which
            pwsh_path = which("pwsh") or which("powershell")
            return pwsh_path if pwsh_path else "cmd.exe"
        return os.environ.get("SHELL", "/bin/sh")

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from file or create default."""
        config = copy.deepcopy(self.DEFAULT_CONFIG)
        if not self.config_file.exists():
            return config
        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except json.JSONDecodeError:
            print_warning("[Warning] Config file corrupted, using defaults")
            return config
        # Merge one level deep so partial nested sections keep their defaults
        for key, value in loaded.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key].update(value)
            else:
                config[key] = value
        return config

    def _load_env_vars(self):
        """Apply environment overrides (possibly coming from .env)."""
        history_dir = os.getenv("REPLINE_HISTORY_DIR")
        if history_dir:
            self.settings["history_dir"] = history_dir
        shell = os.getenv("REPLINE_SHELL")
        if shell:
            self.settings["shell"] = shell

    def save(self):
        """Save current configuration to file."""
        with open(self.config_file, "w", encoding="utf-8") as f:
            json.dump(self.settings, f, indent=2, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value."""
        return self.settings.get(key, default)

    def set(self, key: str, value: Any, persist: bool = True):
        """Set a configuration value; ``persist=False`` keeps it process-local."""
        self.settings[key] = value
        if persist:
            self.save()

    def section(self, key: str) -> Dict[str, Any]:
        """Return a nested settings section merged over its defaults."""
        merged = copy.deepcopy(self.DEFAULT_CONFIG.get(key, {}))
        merged.update(self.settings.get(key) or {})
        return merged

    def get_history_dir(self) -> Optional[Path]:
        """Directory holding ``r.db`` / ``shell.db``, or None when history is disabled."""
        if self.settings.get("history_disabled"):
            return None
        history_dir = self.settings.get("history_dir")
        if history_dir:
            return Path(history_dir).expanduser()
        return self.config_dir / "history"

    def get_shell(self) -> str:
        """Shell executable used by shell mode."""
        return self.settings.get("shell") or self._detect_shell()
