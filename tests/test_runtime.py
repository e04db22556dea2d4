import tempfile
import unittest
from pathlib import Path

from yolo_live.runtime import find_project_root, infer_backend, load_model, resolve_path


class TestRuntimeHelpers(unittest.TestCase):
    def test_infer_backend_from_extension(self) -> None:
        self.assertEqual(infer_backend(Path("m/yolov8n.onnx")), "onnxruntime")
        self.assertEqual(infer_backend(Path("m/yolov8n.torchscript")), "torchscript")
        with self.assertRaises(ValueError):
            infer_backend(Path("m/yolov8n.engine"))

    def test_project_root_and_relative_paths(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp).resolve()
            (root / "pyproject.toml").write_text("", encoding="utf-8")
            nested = root / "Scripts" / "sub"
            nested.mkdir(parents=True)

            self.assertEqual(find_project_root(nested), root)
            self.assertEqual(resolve_path("models/a.onnx", root=root), root / "models" / "a.onnx")
            self.assertEqual(resolve_path(root / "x.onnx", root="auto"), root / "x.onnx")

    def test_missing_model_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(FileNotFoundError):
                load_model(Path(tmp) / "missing.onnx")

    def test_unknown_backend(self) -> None:
        with self.assertRaises(ValueError):
            load_model("/tmp/model.onnx", backend="tflite")


if __name__ == "__main__":
    unittest.main()
