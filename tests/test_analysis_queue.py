"""Tests for the analyzer file queue."""
import asyncio

import pytest

from app.models.schemas import FileStatus
from app.services.analysis_queue import AnalyzerManager, FileQueue
from app.services.file_extractor import ExtractionError, ExtractionErrorKind


class _ScriptedExtractor:
    """Returns ``text:<name>``; names in ``failing`` raise an ExtractionError."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.seen = []
        self.gate = None

    async def extract(self, data, filename, content_type):
        self.seen.append(filename)
        if self.gate is not None:
            await self.gate.wait()
        if filename in self.failing:
            raise ExtractionError(ExtractionErrorKind.CORRUPT, f"{filename} hỏng")
        return f"  text:{filename}  "


def _uploads(*names):
    return [(name, "text/plain", name.encode()) for name in names]


@pytest.mark.asyncio
async def test_files_processed_fifo_and_errors_isolated():
    extractor = _ScriptedExtractor(failing={"b.txt"})
    queue = FileQueue(extractor)

    queue.add(_uploads("a.txt", "b.txt", "c.txt"))
    await queue.wait_until_idle()

    assert extractor.seen == ["a.txt", "b.txt", "c.txt"]
    assert [f.status for f in queue.files] == [FileStatus.DONE, FileStatus.ERROR, FileStatus.DONE]
    assert queue.files[0].content == "text:a.txt"
    assert queue.files[1].error == "b.txt hỏng"
    assert all(f.data is None for f in queue.files)
    assert queue.all_processed


@pytest.mark.asyncio
async def test_only_one_file_in_flight():
    extractor = _ScriptedExtractor()
    extractor.gate = asyncio.Event()
    queue = FileQueue(extractor)

    queue.add(_uploads("a.txt", "b.txt"))
    await asyncio.sleep(0)
    await asyncio.sleep(0)

    assert [f.status for f in queue.files] == [FileStatus.PROCESSING, FileStatus.PENDING]
    assert not queue.all_processed

    extractor.gate.set()
    await queue.wait_until_idle()
    assert [f.status for f in queue.files] == [FileStatus.DONE, FileStatus.DONE]


@pytest.mark.asyncio
async def test_files_added_later_restart_worker():
    queue = FileQueue(_ScriptedExtractor())
    queue.add(_uploads("a.txt"))
    await queue.wait_until_idle()

    queue.add(_uploads("b.txt"))
    await queue.wait_until_idle()

    assert [f.status for f in queue.files] == [FileStatus.DONE, FileStatus.DONE]


@pytest.mark.asyncio
async def test_remove_preserves_order_of_rest():
    queue = FileQueue(_ScriptedExtractor())
    queue.add(_uploads("a.txt", "b.txt", "c.txt", "d.txt"))
    await queue.wait_until_idle()

    assert queue.remove(queue.files[1].id)
    assert [f.filename for f in queue.files] == ["a.txt", "c.txt", "d.txt"]
    assert not queue.remove("file-missing")


@pytest.mark.asyncio
async def test_file_removed_while_processing_is_dropped():
    extractor = _ScriptedExtractor()
    extractor.gate = asyncio.Event()
    queue = FileQueue(extractor)
    (entry,) = queue.add(_uploads("a.txt"))
    await asyncio.sleep(0)

    queue.remove(entry.id)
    extractor.gate.set()
    await queue.wait_until_idle()

    assert queue.files == []
    assert queue.combined_text() == ""


@pytest.mark.asyncio
async def test_reorder_and_combined_text_numbering():
    queue = FileQueue(_ScriptedExtractor(failing={"bad.txt"}))
    queue.add(_uploads("a.txt", "bad.txt", "c.txt"))
    await queue.wait_until_idle()

    queue.reorder(2, 0)
    assert [f.filename for f in queue.files] == ["c.txt", "a.txt", "bad.txt"]

    assert queue.combined_text() == (
        "--- BẮT ĐẦU NỘI DUNG FILE 1: c.txt ---\n\ntext:c.txt\n\n--- KẾT THÚC NỘI DUNG FILE 1 ---"
        "\n\n========================================\n\n"
        "--- BẮT ĐẦU NỘI DUNG FILE 2: a.txt ---\n\ntext:a.txt\n\n--- KẾT THÚC NỘI DUNG FILE 2 ---"
    )


def test_reorder_rejects_bad_index():
    queue = FileQueue(_ScriptedExtractor())
    with pytest.raises(IndexError):
        queue.reorder(0, 1)


@pytest.mark.asyncio
async def test_manager_expires_idle_finished_sessions(fake_ai):
    idle = AnalyzerManager.create(fake_ai)
    busy = AnalyzerManager.create(fake_ai)
    extractor = _ScriptedExtractor()
    extractor.gate = asyncio.Event()
    busy.queue = FileQueue(extractor)
    busy.queue.add(_uploads("a.txt"))
    try:
        idle.last_access -= 1000
        busy.last_access -= 1000

        assert AnalyzerManager.expire_idle(max_idle=500) == 1
        assert AnalyzerManager.get(idle.id) is None
        assert AnalyzerManager.get(busy.id) is busy
    finally:
        extractor.gate.set()
        AnalyzerManager.delete(busy.id)
