"""End-to-end pipeline test with a fake renderer and a mocked model call."""

import asyncio
import json
import tempfile
import threading
import unittest
from pathlib import Path
from unittest.mock import AsyncMock, patch

from meshscad.config import ReconstructionSettings
from meshscad.core import pipeline as pipeline_module
from meshscad.core import viewer as viewer_module
from meshscad.core.errors import MeshNotReady, RenderTargetUnavailable
from meshscad.core.llm_client import InferenceResponse, UsageInfo
from meshscad.core.orientations import VIEW_LABELS
from meshscad.core.pipeline import reconstruct
from meshscad.schemas import ReconstructionRequest, ReconstructionStage
from tests.unit.common import FakeRenderer, make_box

SCAD = "function half(x) = x / 2;\nmodule plate() { cube([10, half(60), 20]); }\nplate();"


class TestReconstruct(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self.settings = ReconstructionSettings(
            storage_dir=self.tmp / "data",
            settle_delay_seconds=0.0,
            gemini_api_key="test-key",
        )
        self.mesh_path = self.tmp / "plate.stl"
        make_box(extents=(10.0, 20.0, 30.0)).export(str(self.mesh_path))
        self.renderers = []

    def tearDown(self):
        self._tmp.cleanup()

    def _build_viewer(self, renderer_factory=FakeRenderer):
        def build(mesh, **kwargs):
            kwargs.pop("gl_platform", None)
            renderer = renderer_factory()
            self.renderers.append(renderer)
            viewer = viewer_module.build_viewer(mesh, renderer=renderer, **kwargs)
            renderer.controls = viewer.controls
            return viewer
        return build

    def _inference(self):
        return AsyncMock(return_value=InferenceResponse(
            code=SCAD,
            explanation="Rectangular plate.",
            usage=UsageInfo(model="gemini-test", input_tokens=10, output_tokens=5),
            elapsed_seconds=1.5,
        ))

    async def test_full_flow(self):
        stages = []
        request = ReconstructionRequest(
            mesh_path=str(self.mesh_path),
            context="wall bracket",
            request_id="session-1",
            include_frames=True,
        )
        inference = self._inference()
        with patch("meshscad.core.pipeline.build_viewer", side_effect=self._build_viewer()), \
                patch("meshscad.core.pipeline.generate_scad", new=inference):
            result = await reconstruct(
                request,
                self.settings,
                render_lock=asyncio.Lock(),
                progress_callback=lambda stage, pct, detail: stages.append(stage),
            )

        self.assertTrue(result.success)
        self.assertEqual(result.session_id, "session-1")
        self.assertEqual(result.code, SCAD)
        self.assertEqual(result.modules, ["plate"])
        self.assertEqual(result.functions, ["half"])
        self.assertEqual(result.num_frames, 36)
        self.assertEqual(result.view_labels, list(VIEW_LABELS))
        self.assertEqual([f.label for f in result.frames], list(VIEW_LABELS))
        self.assertTrue(result.frames[0].data_uri.startswith("data:image/jpeg;base64,"))

        # frames reach the model in capture order, with the prompt context
        args = inference.call_args.args
        self.assertEqual(args[0], "gemini")
        self.assertIn("wall bracket", args[2])
        self.assertIn("plate.stl", args[2])
        self.assertEqual([f.label for f in args[3]], list(VIEW_LABELS))
        self.assertEqual(inference.call_args.kwargs["gemini_api_key"], "test-key")

        session_dir = self.settings.sessions_dir / "session-1"
        session = json.loads((session_dir / "session.json").read_text())
        self.assertEqual(session["view_labels"], list(VIEW_LABELS))
        self.assertEqual(session["modules"], ["plate"])
        self.assertEqual(session["functions"], ["half"])
        self.assertEqual(session["llm_name"], "gemini")
        self.assertEqual((session_dir / "model.scad").read_text(), SCAD)
        frame_files = sorted((session_dir / "frames").iterdir())
        self.assertEqual(len(frame_files), 36)
        self.assertEqual(frame_files[0].name, "01_Top_Global.jpg")

        self.assertEqual(stages[0], ReconstructionStage.loading)
        self.assertIn(ReconstructionStage.ready, stages)
        self.assertEqual(stages[-1], ReconstructionStage.complete)
        self.assertEqual(self.renderers[0].calls, 37)

    async def test_frames_omitted_unless_requested(self):
        request = ReconstructionRequest(mesh_path=str(self.mesh_path))
        with patch("meshscad.core.pipeline.build_viewer", side_effect=self._build_viewer()), \
                patch("meshscad.core.pipeline.generate_scad", new=self._inference()):
            result = await reconstruct(request, self.settings)
        self.assertEqual(result.frames, [])
        self.assertEqual(len(result.view_labels), 36)

    async def test_configured_default_model_used(self):
        self.settings = ReconstructionSettings(
            storage_dir=self.tmp / "data",
            settle_delay_seconds=0.0,
            anthropic_api_key="test-key",
            default_llm="claude-sonnet",
        )
        request = ReconstructionRequest(mesh_path=str(self.mesh_path), request_id="session-2")
        inference = self._inference()
        with patch("meshscad.core.pipeline.build_viewer", side_effect=self._build_viewer()), \
                patch("meshscad.core.pipeline.generate_scad", new=inference):
            result = await reconstruct(request, self.settings)

        self.assertEqual(inference.call_args.args[0], "claude-sonnet")
        self.assertEqual(result.llm_used, "claude-sonnet")
        session = json.loads((self.settings.sessions_dir / "session-2" / "session.json").read_text())
        self.assertEqual(session["llm_name"], "claude-sonnet")

    async def test_frame_processing_runs_off_the_event_loop(self):
        threads = {}

        def recorded(name, func):
            def run(*args, **kwargs):
                threads[name] = threading.get_ident()
                return func(*args, **kwargs)
            return run

        request = ReconstructionRequest(mesh_path=str(self.mesh_path))
        with patch("meshscad.core.pipeline.build_viewer", side_effect=self._build_viewer()), \
                patch("meshscad.core.pipeline.generate_scad", new=self._inference()), \
                patch("meshscad.core.pipeline.optimize_frames",
                      side_effect=recorded("optimize", pipeline_module.optimize_frames)), \
                patch("meshscad.core.pipeline.write_frames",
                      side_effect=recorded("write", pipeline_module.write_frames)):
            result = await reconstruct(request, self.settings)

        self.assertTrue(result.success)
        loop_thread = threading.get_ident()
        self.assertEqual(set(threads), {"optimize", "write"})
        self.assertNotEqual(threads["optimize"], loop_thread)
        self.assertNotEqual(threads["write"], loop_thread)

    async def test_capture_failure_skips_inference(self):
        request = ReconstructionRequest(mesh_path=str(self.mesh_path))
        inference = self._inference()
        factory = self._build_viewer(lambda: FakeRenderer(fail_at=7))
        with patch("meshscad.core.pipeline.build_viewer", side_effect=factory), \
                patch("meshscad.core.pipeline.generate_scad", new=inference):
            with self.assertRaises(RenderTargetUnavailable):
                await reconstruct(request, self.settings)
        inference.assert_not_called()

    async def test_missing_mesh(self):
        request = ReconstructionRequest(mesh_path=str(self.tmp / "missing.stl"))
        with self.assertRaises(MeshNotReady):
            await reconstruct(request, self.settings)


if __name__ == "__main__":
    unittest.main()
