"""
Configuration module for the Gradebook service.

Loads environment variables from .env, validates required settings,
creates necessary directories, and exposes a singleton Config object.
"""

import os
import sys
import json
import logging
from pathlib import Path
from typing import List, Dict, Any

from dotenv import load_dotenv

DEFAULT_GRADE_SCALE: List[Dict[str, Any]] = [
    {"label": "A", "min": 90},
    {"label": "B", "min": 80},
    {"label": "C", "min": 70},
    {"label": "D", "min": 60},
    {"label": "F", "min": 0},
]


class Config:
    """Central configuration loaded from environment variables."""

    def __init__(self, env_path: str = None):
        """
        Initialize configuration from .env file.

        Args:
            env_path: Optional explicit path to .env file.
                      Defaults to .env in the project root.
        """
        self.project_root: Path = Path(__file__).resolve().parent.parent
        env_file = Path(env_path) if env_path else self.project_root / ".env"

        if env_file.exists():
            load_dotenv(dotenv_path=str(env_file))
        else:
            alt = self.project_root / ".env.example"
            if alt.exists():
                load_dotenv(dotenv_path=str(alt))
                logging.warning(".env not found - loaded .env.example defaults")

        # ── Database ──
        self.DATABASE_URL: str = os.getenv(
            "DATABASE_URL", f"sqlite:///{self.project_root / 'gradebook.db'}"
        )

        # ── Threading ──
        self.MAX_THREADS: int = int(os.getenv("MAX_THREADS", "4"))

        # ── Grading ──
        self.GRADE_SCALE: List[Dict[str, Any]] = self._parse_grade_scale(
            os.getenv("GRADE_SCALE", json.dumps(DEFAULT_GRADE_SCALE))
        )

        # ── Web Portal ──
        self.PORTAL_HOST: str = os.getenv("PORTAL_HOST", "0.0.0.0")
        self.PORTAL_PORT: int = int(os.getenv("PORTAL_PORT", "8000"))

        # ── Logging ──
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR: Path = Path(
            os.getenv("LOG_DIR", str(self.project_root / "logs"))
        )

        # ── Create directories ──
        self.LOG_DIR.mkdir(parents=True, exist_ok=True)

    # ─── helpers ─────────────────────────────────────────────

    @staticmethod
    def _parse_grade_scale(raw: str) -> List[Dict[str, Any]]:
        """
        Parse a grade scale JSON string into bands sorted by minimum descending.

        Accepts either a list of ``{"label", "min"}`` objects or a
        ``{label: min}`` mapping.
        """
        try:
            scale = json.loads(raw)
        except json.JSONDecodeError:
            return list(DEFAULT_GRADE_SCALE)

        if isinstance(scale, dict):
            scale = [{"label": k, "min": v} for k, v in scale.items()]
        if not isinstance(scale, list) or not scale:
            return list(DEFAULT_GRADE_SCALE)
        return sorted(scale, key=lambda band: band["min"], reverse=True)

    def validate(self) -> bool:
        """
        Validate that all critical configuration is present.

        Returns:
            True if valid, False otherwise. Prints issues to stderr.
        """
        valid = True

        if not self.DATABASE_URL:
            print("⚠️  DATABASE_URL is empty.", file=sys.stderr)
            valid = False

        if self.MAX_THREADS < 1:
            print("⚠️  MAX_THREADS must be >= 1.", file=sys.stderr)
            valid = False

        mins = [band.get("min") for band in self.GRADE_SCALE]
        if any(not isinstance(m, (int, float)) or not 0 <= m <= 100 for m in mins):
            print(
                "⚠️  GRADE_SCALE minimums must be numbers between 0 and 100.",
                file=sys.stderr,
            )
            valid = False

        return valid

    def print_summary(self) -> None:
        """Print startup configuration summary."""
        border = "═" * 56
        print(f"\n{border}")
        print("  Gradebook - Configuration Summary")
        print(border)
        print(f"  Project root       : {self.project_root}")
        print(f"  Database           : {self.DATABASE_URL}")
        print(f"  Log directory      : {self.LOG_DIR}")
        print(f"  Max threads        : {self.MAX_THREADS}")
        print(f"  Portal             : http://{self.PORTAL_HOST}:{self.PORTAL_PORT}")
        print(f"  Log level          : {self.LOG_LEVEL}")
        scale = ", ".join(f"{b['label']}>={b['min']}" for b in self.GRADE_SCALE)
        print(f"  Grade scale        : {scale}")
        print(f"{border}\n")


# ── Singleton ──
_config_instance: Config = None


def get_config(env_path: str = None) -> Config:
    """
    Return the singleton Config instance.

    Args:
        env_path: Optional path to .env file (used only on first call).

    Returns:
        Config singleton.
    """
    global _config_instance
    if _config_instance is None:
        _config_instance = Config(env_path=env_path)
    return _config_instance
