from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import List, Optional, Tuple

from app.core.logging import get_logger


NOTES_DIR = "research_notes"
ANALYSIS_DIR = "analysis"
REPORTS_DIR = "reports"
SYNTHESIS_FILE = f"{ANALYSIS_DIR}/synthesis.md"
REPORT_FILE = f"{REPORTS_DIR}/final_report.md"

_UNSAFE_NAME = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(agent_id: str) -> str:
    cleaned = _UNSAFE_NAME.sub("_", agent_id).strip("._")
    return cleaned or "agent"


class ArtifactStore:
    """
    Markdown artifacts produced by one research session.

    Everything lives under ``<base_path>/sessions/<session_id>/`` so
    concurrent sessions never see each other's notes. Paths returned to
    callers are relative to that session directory.
    """

    def __init__(self, base_path: str | Path, session_id: str) -> None:
        self.session_id = session_id
        self.root = Path(base_path) / "sessions" / session_id
        self.logger = get_logger("ArtifactStore").bind(session_id=session_id)

    def note_path(self, agent_id: str) -> str:
        return f"{NOTES_DIR}/{_safe_name(agent_id)}.md"

    def resolve(self, relative_path: str) -> Path:
        return self.root / relative_path

    def _write_sync(self, relative_path: str, content: str) -> None:
        """Synchronous write, called via ``asyncio.to_thread``."""
        path = self.resolve(relative_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def _read_sync(self, relative_path: str) -> Optional[str]:
        """Synchronous read, called via ``asyncio.to_thread``."""
        path = self.resolve(relative_path)
        if not path.is_file():
            return None
        return path.read_text(encoding="utf-8")

    def _read_notes_sync(self) -> List[Tuple[str, str]]:
        directory = self.root / NOTES_DIR
        if not directory.is_dir():
            return []
        return [
            (path.name, path.read_text(encoding="utf-8"))
            for path in sorted(directory.glob("*.md"))
        ]

    async def write(self, relative_path: str, content: str) -> str:
        await asyncio.to_thread(self._write_sync, relative_path, content)
        self.logger.info("ArtifactStore.written", path=relative_path, chars=len(content))
        return relative_path

    async def read(self, relative_path: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_sync, relative_path)

    async def write_note(self, agent_id: str, content: str) -> str:
        return await self.write(self.note_path(agent_id), content)

    async def read_notes(self) -> List[Tuple[str, str]]:
        """All research notes as ``(file name, content)`` pairs, in name order."""
        return await asyncio.to_thread(self._read_notes_sync)

    async def list_notes(self) -> List[str]:
        return [name for name, _ in await self.read_notes()]

    async def write_synthesis(self, content: str) -> str:
        return await self.write(SYNTHESIS_FILE, content)

    async def read_synthesis(self) -> Optional[str]:
        return await self.read(SYNTHESIS_FILE)

    async def write_report(self, content: str) -> str:
        return await self.write(REPORT_FILE, content)

    async def read_report(self) -> Optional[str]:
        return await self.read(REPORT_FILE)
