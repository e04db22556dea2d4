import unittest

import numpy as np

from yolo_live.types import Box, Detection, LetterboxTransform, NMSFilterResult, count_by_class


class TestTypes(unittest.TestCase):
    def test_count_by_class_most_frequent_first(self) -> None:
        box = Box(0, 0, 1, 1)
        dets = [
            Detection("shell", 0.9, box),
            Detection("oyster", 0.8, box),
            Detection("oyster", 0.7, box),
        ]
        counts = count_by_class(dets)
        self.assertEqual(list(counts.items()), [("oyster", 2), ("shell", 1)])
        self.assertEqual(count_by_class([]), {})

    def test_boxes_to_source_does_not_mutate(self) -> None:
        t = LetterboxTransform(scale=0.5, pad_x=0.0, pad_y=140.0, src_width=1280, src_height=720)
        boxes = np.array([[0.0, 140.0, 640.0, 500.0]])
        out = t.boxes_to_source(boxes)
        self.assertTrue(np.allclose(out, [[0.0, 0.0, 1280.0, 720.0]]))
        self.assertTrue(np.allclose(boxes, [[0.0, 140.0, 640.0, 500.0]]))

    def test_filter_result_iteration(self) -> None:
        res = NMSFilterResult(
            indices=np.array([3, 1]), scores=np.array([0.9, 0.4]), class_ids=np.array([0, 2])
        )
        self.assertEqual(len(res), 2)
        self.assertEqual([(i, c) for i, _, c in res], [(3, 0), (1, 2)])
        self.assertEqual(len(NMSFilterResult.empty()), 0)

    def test_filter_result_length_mismatch(self) -> None:
        with self.assertRaises(ValueError):
            NMSFilterResult(indices=np.array([1]), scores=np.array([0.5, 0.4]), class_ids=np.array([0]))

    def test_detection_is_immutable(self) -> None:
        det = Detection("oyster", 0.5, Box(1, 2, 3, 4), class_id=0)
        with self.assertRaises(AttributeError):
            det.score = 0.9  # type: ignore[misc]
        self.assertEqual(det.box.width, 2)
        self.assertEqual(det.box.height, 2)


if __name__ == "__main__":
    unittest.main()
