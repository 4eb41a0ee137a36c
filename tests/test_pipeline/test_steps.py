"""Tests for per-step command construction and the scene job layout."""

import logging
from pathlib import Path

from polyfjord3d.pipeline.job import JobResult, JobState, SceneJob
from polyfjord3d.pipeline.steps import (
    export_commands,
    export_model,
    feature_extraction_command,
    frame_extraction_command,
    mapper_command,
    matching_command,
)


class TestSceneJob:
    """Tests for SceneJob layout."""

    def test_from_video(self, tmp_path):
        """Test every path derives from the video's stem."""
        job = SceneJob.from_video("footage/clip.final.mp4", tmp_path / "scenes")
        scene = tmp_path / "scenes" / "clip.final"
        assert job.name == "clip.final"
        assert job.scene_dir == scene
        assert job.images_dir == scene / "images"
        assert job.sparse_dir == scene / "sparse"
        assert job.database_path == scene / "database.db"
        assert job.model_dir == scene / "sparse" / "0"

    def test_create_dirs(self, tmp_path):
        """Test images/ and sparse/ are created together."""
        job = SceneJob.from_video("clip.mp4", tmp_path / "scenes")
        job.create_dirs()
        assert job.images_dir.is_dir()
        assert job.sparse_dir.is_dir()
        assert not job.database_path.exists()

    def test_result_ok(self):
        """Test only FAILED results are not ok."""
        video = Path("clip.mp4")
        assert JobResult(video, JobState.DONE, JobState.EXPORTED_TEXT).ok
        assert JobResult(
            video, JobState.SKIPPED_EXISTING, JobState.SKIPPED_EXISTING
        ).ok
        assert not JobResult(video, JobState.FAILED, JobState.PENDING).ok


class TestCommands:
    """Tests for the external command lines."""

    def test_frame_extraction(self, make_context, fake_tools, tmp_path):
        """Test ffmpeg decodes the video into numbered JPEGs."""
        ctx = make_context(frame_quality=3)
        job = SceneJob.from_video(tmp_path / "clip.mp4", ctx.config.scenes_dir)

        cmd = frame_extraction_command(job, ctx)

        assert cmd == [
            fake_tools["ffmpeg"],
            "-i",
            job.video_path,
            "-qscale:v",
            "3",
            job.images_dir / "frame_%06d.jpg",
        ]

    def test_colmap_flags(self, make_context, fake_tools, tmp_path):
        """Test COLMAP commands carry the variant flags and thread count."""
        ctx = make_context("colmap")
        job = SceneJob.from_video(tmp_path / "clip.mp4", ctx.config.scenes_dir)

        features = feature_extraction_command(job, ctx)
        assert features[:2] == [fake_tools["colmap"], "feature_extractor"]
        assert features[features.index("--SiftExtraction.max_image_size") + 1] == (
            "4096"
        )

        matching = matching_command(job, ctx)
        assert matching[-2:] == ["--SequentialMatching.overlap", "15"]

        mapper = mapper_command(job, ctx)
        assert mapper[:2] == [fake_tools["colmap"], "mapper"]
        assert mapper[-2:] == ["--Mapper.num_threads", "8"]

        assert len(export_commands(job, ctx)) == 1

    def test_glomap_uses_companion(self, make_context, fake_tools, tmp_path):
        """Test GLOMAP maps with glomap but extracts and exports with colmap."""
        ctx = make_context("glomap")
        job = SceneJob.from_video(tmp_path / "clip.mp4", ctx.config.scenes_dir)

        assert feature_extraction_command(job, ctx) == [
            fake_tools["colmap"],
            "feature_extractor",
            "--database_path",
            job.database_path,
            "--image_path",
            job.images_dir,
        ]
        assert matching_command(job, ctx) == [
            fake_tools["colmap"],
            "sequential_matcher",
            "--database_path",
            job.database_path,
        ]

        mapper = mapper_command(job, ctx)
        assert mapper[0] == fake_tools["glomap"]
        assert "--Mapper.num_threads" not in mapper

        first, final = export_commands(job, ctx)
        assert first[0] == fake_tools["colmap"]
        assert first[first.index("--input_path") + 1] == job.model_dir
        assert first[first.index("--output_path") + 1] == job.model_dir
        assert final[final.index("--output_path") + 1] == job.sparse_dir
        assert final[-2:] == ["--output_type", "TXT"]


class TestExportModel:
    """Tests for export_model."""

    def test_no_model_skips_export(self, make_context, fake_runner, tmp_path, caplog):
        """Test a missing sparse/0 skips conversion with a warning."""
        ctx = make_context()
        job = SceneJob.from_video(tmp_path / "clip.mp4", ctx.config.scenes_dir)
        job.create_dirs()

        with caplog.at_level(logging.WARNING):
            assert export_model(job, ctx) is False

        assert fake_runner.calls == []
        assert "no model" in caplog.text

    def test_glomap_step_names(self, make_context, fake_runner, tmp_path):
        """Test the self-to-self pass is reported under its own name."""
        ctx = make_context("glomap")
        job = SceneJob.from_video(tmp_path / "clip.mp4", ctx.config.scenes_dir)
        job.model_dir.mkdir(parents=True)

        assert export_model(job, ctx) is True
        assert fake_runner.steps() == [
            "model_converter (for glomap)",
            "model_converter",
        ]
        assert (job.sparse_dir / "points3D.txt").exists()
