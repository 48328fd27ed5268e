import os
import time

from audio_export.storage.temp_results import TempResultStore, result_filename


def test_result_filename_is_filesystem_safe():
    assert result_filename("My Book: Part 2!") == "final_my_book__part_2_.mp3"


def test_job_dir_lifecycle(tmp_path):
    store = TempResultStore(base_dir=str(tmp_path))

    job_dir = store.get_job_dir("job-1")
    assert os.path.isdir(job_dir)
    open(store.get_output_path("job-1", "final.mp3"), "wb").close()
    assert store.file_exists("job-1", "final.mp3")

    assert store.remove_job_dir("job-1") is True
    assert not os.path.exists(job_dir)
    assert store.remove_job_dir("job-1") is False


def test_cleanup_expired_skips_active_jobs(tmp_path):
    store = TempResultStore(base_dir=str(tmp_path), ttl_hours=1)
    stale = store.get_job_dir("stale")
    active = store.get_job_dir("active")
    fresh = store.get_job_dir("fresh")
    three_hours_ago = time.time() - 3 * 3600
    for path in (stale, active):
        os.utime(path, (three_hours_ago, three_hours_ago))

    removed = store.cleanup_expired(exclude=["active"])

    assert removed == 1
    assert not os.path.exists(stale)
    assert os.path.exists(active)
    assert os.path.exists(fresh)
