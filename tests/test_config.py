from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from bodyscan.config import EstimationConfig, default_config_path, load_config
from bodyscan.errors import ConfigError


class ConfigLoaderTests(unittest.TestCase):
    def _write(self, tmpdir: str, text: str) -> Path:
        path = Path(tmpdir) / "estimation.yaml"
        path.write_text(text, encoding="utf-8")
        return path

    def test_repo_config_matches_defaults(self) -> None:
        self.assertTrue(default_config_path().exists())
        cfg = load_config()
        self.assertEqual(cfg.edges.threshold, 100)
        self.assertEqual(cfg.contours.min_points, 50)
        self.assertEqual(cfg.validation.ranges["chest"].max, 150)
        self.assertEqual(cfg.validation.height.average, 170.0)
        self.assertEqual(cfg.capture.scan_timeout_seconds, 15.0)

    def test_partial_override_keeps_other_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            cfg = load_config(self._write(tmpdir, "edges:\n  threshold: 80\n"))
        self.assertEqual(cfg.edges.threshold, 80)
        self.assertEqual(cfg.presence.head_radius_px, 15)
        self.assertEqual(cfg.landmarks.proportions["shoulder"].spread, 0.4)

    def test_empty_file_gives_defaults(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(load_config(self._write(tmpdir, "")), EstimationConfig())

    def test_unknown_key_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_config(self._write(tmpdir, "edges:\n  treshold: 80\n"))

    def test_inverted_range_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_config(self._write(tmpdir, "validation:\n  ranges:\n    chest: {min: 150, max: 60}\n"))

    def test_bad_yaml_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_config(self._write(tmpdir, "edges: [threshold\n"))

    def test_non_mapping_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_config(self._write(tmpdir, "- 1\n- 2\n"))

    def test_missing_explicit_path_rejected(self) -> None:
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(ConfigError):
                load_config(Path(tmpdir) / "missing.yaml")


if __name__ == "__main__":
    unittest.main()
