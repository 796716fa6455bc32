"""Tests for environment-driven service settings."""

import os
import tempfile
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from meshscad.config import ReconstructionSettings


class TestDefaultLlmSetting(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self._tmp.cleanup()

    def test_read_from_environment(self):
        with patch.dict(os.environ, {"MESHSCAD_DEFAULT_LLM": "claude"}):
            settings = ReconstructionSettings(storage_dir=self._tmp.name)
        self.assertEqual(settings.default_llm, "claude")

    def test_unknown_model_rejected(self):
        with self.assertRaises(ValidationError):
            ReconstructionSettings(storage_dir=self._tmp.name, default_llm="gpt")


if __name__ == "__main__":
    unittest.main()
