import io
import shutil
import tempfile
import unittest
import zipfile
from pathlib import Path
from unittest import mock

from image_harvest.errors import ArchiveError
from image_harvest.pipeline import harvest_file
from image_harvest.store import artifact_id_from_url

from stubs import (
    SCENARIO_ROWS,
    StubFetcher,
    StubResolver,
    build_workbook,
    make_harvester,
    scenario_harvester,
)


class PipelineTestCase(unittest.TestCase):

    def setUp(self):
        self.tmp = Path(tempfile.mkdtemp(prefix="harvest-pipeline-"))

    def tearDown(self):
        shutil.rmtree(self.tmp, ignore_errors=True)

    def work_dirs(self):
        work_root = self.tmp / "work"
        return list(work_root.iterdir()) if work_root.exists() else []


class TestHarvesterStream(PipelineTestCase):

    def _run_scenario(self, workers=1):
        harvester = scenario_harvester(self.tmp, workers=workers)
        frames = list(harvester.stream_upload(build_workbook(SCENARIO_ROWS), "items.xlsx"))
        return harvester, frames

    def test_end_to_end_scenario(self):
        harvester, frames = self._run_scenario()

        progress = [f for f in frames if f["type"] == "progress"]
        self.assertGreaterEqual(len(progress), len(SCENARIO_ROWS) + 1)
        final = progress[-1]["items"]
        self.assertEqual([item["status"] for item in final], ["success", "failed", "success"])
        self.assertEqual(final[1]["error"], "No images found")
        self.assertNotIn("error", final[0])

        self.assertEqual(frames[-1]["type"], "complete")
        self.assertEqual(sum(1 for f in frames if f["type"] == "complete"), 1)

        data = harvester.store.get(artifact_id_from_url(frames[-1]["downloadUrl"]))
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            self.assertEqual(sorted(archive.namelist()), ["1.png", "3.jpg"])

    def test_scenario_with_worker_pool_matches_sequential(self):
        _, sequential = self._run_scenario(workers=1)
        _, pooled = self._run_scenario(workers=3)
        strip = lambda frames: [f for f in frames if f["type"] == "progress"]
        self.assertEqual(strip(sequential), strip(pooled))

    def test_row_order_preserved_in_every_frame(self):
        _, frames = self._run_scenario()
        for frame in frames:
            if frame["type"] == "progress":
                self.assertEqual([item["id"] for item in frame["items"]], ["1", "2", "3"])

    def test_working_directory_removed(self):
        self._run_scenario()
        self.assertEqual(self.work_dirs(), [])

    def test_zero_successes_still_builds_empty_archive(self):
        harvester = make_harvester(self.tmp, StubResolver({}), StubFetcher({}))
        frames = list(harvester.stream_upload(build_workbook([(1, "a"), (2, "b")]), "items.xlsx"))

        final = [f for f in frames if f["type"] == "progress"][-1]["items"]
        self.assertTrue(all(item["status"] == "failed" for item in final))
        self.assertEqual(frames[-1]["type"], "complete")
        data = harvester.store.get(artifact_id_from_url(frames[-1]["downloadUrl"]))
        with zipfile.ZipFile(io.BytesIO(data)) as archive:
            self.assertEqual(archive.namelist(), [])

    def test_missing_column_yields_error_and_no_progress(self):
        harvester = scenario_harvester(self.tmp)
        data = build_workbook([(1, "Laptop")], header=("id", "title"))
        frames = list(harvester.stream_upload(data, "items.xlsx"))
        self.assertEqual(len(frames), 1)
        self.assertEqual(frames[0]["type"], "error")

    def test_archive_failure_is_terminal_error(self):
        harvester = scenario_harvester(self.tmp)
        with mock.patch(
            "image_harvest.pipeline.build_archive",
            side_effect=ArchiveError("Failed to create ZIP file"),
        ):
            frames = list(harvester.stream_upload(build_workbook(SCENARIO_ROWS), "items.xlsx"))

        self.assertEqual(frames[-1], {"type": "error", "message": "Failed to create ZIP file"})
        self.assertFalse(any(f["type"] == "complete" for f in frames))
        self.assertEqual(len([f for f in frames if f["type"] == "progress"]), 7)
        self.assertEqual(self.work_dirs(), [])

    def test_consumer_closing_early_cleans_up_without_archive(self):
        harvester = scenario_harvester(self.tmp)
        frames = harvester.stream_upload(build_workbook(SCENARIO_ROWS), "items.xlsx")
        next(frames)
        next(frames)
        frames.close()

        self.assertEqual(self.work_dirs(), [])
        artifacts = self.tmp / "artifacts"
        self.assertEqual(list(artifacts.iterdir()) if artifacts.exists() else [], [])


class TestHarvestFile(PipelineTestCase):

    def test_writes_archive_and_summary(self):
        source = self.tmp / "items.xlsx"
        source.write_bytes(build_workbook(SCENARIO_ROWS))
        lines = []
        summary = harvest_file(source, self.tmp / "out" / "images.zip", scenario_harvester(self.tmp), lines.append)

        self.assertIsNone(summary.error)
        self.assertEqual((summary.succeeded, summary.failed), (2, 1))
        with zipfile.ZipFile(summary.output_path) as archive:
            self.assertEqual(len(archive.namelist()), 2)
        self.assertTrue(all(line.endswith("\n") for line in lines))
        self.assertEqual(list((self.tmp / "artifacts").iterdir()), [])

    def test_reports_validation_error(self):
        source = self.tmp / "items.xlsx"
        source.write_bytes(build_workbook([]))
        summary = harvest_file(source, self.tmp / "images.zip", scenario_harvester(self.tmp))
        self.assertEqual(summary.error, "Excel file is empty")
        self.assertIsNone(summary.output_path)
        self.assertFalse((self.tmp / "images.zip").exists())


if __name__ == "__main__":
    unittest.main()
