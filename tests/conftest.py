from pathlib import Path
from typing import Dict

import pytest

from audio_export.jobs.progress import ProgressReporter
from audio_export.jobs.scheduler import AudioJobScheduler
from audio_export.jobs.store import JobStore
from audio_export.storage.temp_results import TempResultStore
from fakes import (
    FakeAccountSettings,
    FakeFfmpegAssembler,
    FakeRefiner,
    FakeSynthesizer,
    FakeTierProvider,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def jobs_root(tmp_path) -> Path:
    root = tmp_path / "jobs"
    root.mkdir()
    return root


@pytest.fixture
def temp_store(jobs_root) -> TempResultStore:
    return TempResultStore(base_dir=str(jobs_root))


@pytest.fixture
def make_scheduler(temp_store):
    """Build a scheduler wired to fakes; keyword overrides replace any collaborator."""

    def _make(**overrides) -> AudioJobScheduler:
        store = overrides.pop("store", None)
        if store is None:
            store = JobStore()
        parts: Dict[str, object] = dict(
            store=store,
            reporter=ProgressReporter(store),
            temp_store=temp_store,
            account_settings=FakeAccountSettings(),
            tier_provider=FakeTierProvider("creator"),
            refiner=FakeRefiner(),
            synthesizer=FakeSynthesizer(),
            assembler=FakeFfmpegAssembler(),
            paragraphs_per_section=4,
            default_concurrency=3,
        )
        parts.update(overrides)
        return AudioJobScheduler(**parts)

    return _make
