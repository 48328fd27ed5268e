"""Concatenates section audio into the final file with ffmpeg.

Segments are joined with the concat demuxer in stream-copy mode, so every
input (including the generated silence clip) must share the MP3 encoding the
synthesis provider returns.
"""

import asyncio
import logging
import os
import shutil
from pathlib import Path
from typing import List, Sequence, Tuple

from audio_export.jobs.errors import AssemblyError

logger = logging.getLogger(__name__)

SILENCE_FILENAME = "silence.mp3"
CONCAT_LIST_FILENAME = "concat_list.txt"


def _escape_concat_path(path: Path) -> str:
    # concat demuxer quoting: close the quote, emit an escaped quote, reopen
    return str(path).replace("\\", "/").replace("'", "'\\''")


def build_concat_manifest(segments: Sequence[Path], silence_path: Path) -> str:
    """Manifest listing every segment with the silence clip between neighbours."""
    lines: List[str] = []
    for index, segment in enumerate(segments):
        lines.append(f"file '{_escape_concat_path(segment)}'")
        if index < len(segments) - 1:
            lines.append(f"file '{_escape_concat_path(silence_path)}'")
    return "\n".join(lines) + "\n"


class AudioAssembler:
    def __init__(self, ffmpeg_path: str = "ffmpeg", silence_seconds: float = 0.4):
        self.ffmpeg_path = ffmpeg_path
        self.silence_seconds = silence_seconds

    async def assemble(self, segments: Sequence[Path], output_path: Path, work_dir: Path) -> Path:
        """Join ``segments`` in the given order into ``output_path``."""
        segments = [Path(s) for s in segments]
        output_path = Path(output_path)
        work_dir = Path(work_dir)

        if not segments:
            raise AssemblyError("No audio segments to assemble.")
        missing = [str(s) for s in segments if not s.is_file()]
        if missing:
            raise AssemblyError(f"Audio segment not found during assembly: {', '.join(missing)}")

        if len(segments) == 1:
            logger.info("Single segment, copying %s to %s", segments[0].name, output_path.name)
            await asyncio.to_thread(shutil.copyfile, segments[0], output_path)
            return output_path

        silence_path = await self.ensure_silence(work_dir)
        list_path = work_dir / CONCAT_LIST_FILENAME
        list_path.write_text(build_concat_manifest(segments, silence_path), encoding="utf-8")

        logger.info(
            "Concatenating %d segments into %s with %.2fs silence",
            len(segments), output_path.name, self.silence_seconds,
        )
        try:
            await self._run_ffmpeg(
                [
                    "-y",
                    "-f", "concat",
                    "-safe", "0",
                    "-i", str(list_path),
                    "-c", "copy",
                    str(output_path),
                ],
                action="concatenation",
            )
        finally:
            try:
                list_path.unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Could not remove concat list %s: %s", list_path, exc)
        return output_path

    async def ensure_silence(self, work_dir: Path) -> Path:
        """Generate the job's silence clip on first use."""
        silence_path = Path(work_dir) / SILENCE_FILENAME
        if silence_path.is_file() and silence_path.stat().st_size > 0:
            return silence_path

        logger.info("Generating %.2fs silence clip at %s", self.silence_seconds, silence_path)
        await self._run_ffmpeg(
            [
                "-y",
                "-f", "lavfi",
                "-i", "anullsrc=channel_layout=stereo:sample_rate=44100",
                "-t", f"{self.silence_seconds}",
                "-c:a", "libmp3lame",
                "-b:a", "128k",
                str(silence_path),
            ],
            action="silence generation",
        )
        return silence_path

    async def _run_ffmpeg(self, args: List[str], action: str) -> Tuple[bytes, bytes]:
        command = [self.ffmpeg_path, "-hide_banner", "-loglevel", "error", *args]
        logger.debug("FFmpeg command: %s", " ".join(command))
        try:
            process = await asyncio.create_subprocess_exec(
                *command, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE
            )
        except OSError as exc:
            raise AssemblyError(f"FFmpeg {action} failed to start: {exc}") from exc

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            tail = stderr.decode("utf-8", "ignore").strip()[-500:]
            logger.error("FFmpeg %s failed (exit %s): %s", action, process.returncode, tail)
            raise AssemblyError(f"FFmpeg {action} failed (exit {process.returncode}): {tail}")
        return stdout, stderr


def remove_files(paths: Sequence[Path]) -> int:
    """Best-effort deletion of intermediate files. Returns how many were removed."""
    removed = 0
    for path in paths:
        try:
            os.remove(path)
            removed += 1
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("Could not remove temp file %s: %s", path, exc)
    return removed
