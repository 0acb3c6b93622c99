"""Configuration for agentstream."""

from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class Config:
    """Locations of the engines' on-disk session stores."""

    claude_dir: Path = field(default_factory=lambda: Path.home() / ".claude")
    codex_dir: Path = field(default_factory=lambda: Path.home() / ".codex")
    gemini_dir: Path = field(default_factory=lambda: Path.home() / ".gemini")

    @property
    def projects_dir(self) -> Path:
        return self.claude_dir / "projects"

    @property
    def codex_sessions_dir(self) -> Path:
        return self.codex_dir / "sessions"

    @property
    def gemini_tmp_dir(self) -> Path:
        return self.gemini_dir / "tmp"
