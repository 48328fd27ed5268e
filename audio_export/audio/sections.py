"""Splitting refined chapters into globally ordered synthesis sections."""

import re
from pathlib import Path
from typing import List, Sequence

from audio_export.jobs.models import Chapter, Section

_PARAGRAPH_BREAK = re.compile(r"\n\n+")


def split_paragraphs(text: str) -> List[str]:
    """Blank-line separated paragraphs, with empty ones dropped."""
    if not text:
        return []
    return [p for p in _PARAGRAPH_BREAK.split(text) if p.strip()]


def section_filename(chapter_index: int, section_index: int) -> str:
    return f"chapter_{chapter_index}_section_{section_index}.mp3"


def build_sections(
    chapters: Sequence[Chapter],
    job_dir: Path,
    paragraphs_per_section: int,
) -> List[Section]:
    """Flatten chapters into sections numbered densely across the manuscript.

    Each section groups up to ``paragraphs_per_section`` consecutive
    paragraphs of one chapter; sections never span chapters.
    """
    if paragraphs_per_section < 1:
        raise ValueError("paragraphs_per_section must be >= 1")

    sections: List[Section] = []
    for chapter_index, chapter in enumerate(chapters):
        paragraphs = split_paragraphs(chapter.content)
        for start in range(0, len(paragraphs), paragraphs_per_section):
            section_index = start // paragraphs_per_section
            sections.append(
                Section(
                    chapter_index=chapter_index,
                    section_index=section_index,
                    order=len(sections),
                    text="\n\n".join(paragraphs[start:start + paragraphs_per_section]),
                    path=Path(job_dir) / section_filename(chapter_index, section_index),
                )
            )
    return sections
