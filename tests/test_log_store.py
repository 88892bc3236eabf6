import unittest

from calendar_copilot.log_store import LogStore


class LogStoreTests(unittest.TestCase):
    def test_drops_oldest_beyond_capacity(self) -> None:
        sink = LogStore(capacity=3)
        for n in range(5):
            sink.record(source="test", message=f"entry {n}")
        entries = sink.entries()
        self.assertEqual([entry["id"] for entry in entries], [3, 4, 5])
        self.assertEqual(entries[0]["message"], "entry 2")

    def test_since_id_tails_incrementally(self) -> None:
        sink = LogStore()
        first = sink.record(source="planner", message="one")
        sink.record(source="planner", message="two", level="warn")
        newer = sink.entries(since_id=first["id"])
        self.assertEqual([entry["message"] for entry in newer], ["two"])
        self.assertEqual(newer[0]["level"], "warn")
        self.assertEqual(sink.entries(since_id=newer[0]["id"]), [])

    def test_detail_is_stringified(self) -> None:
        sink = LogStore()
        self.assertEqual(sink.record(source="s", message="m", detail="raw text")["detail"], "raw text")
        self.assertIn('"model": "x"', sink.record(source="s", message="m", detail={"model": "x"})["detail"])
        self.assertEqual(sink.record(source="s", message="m")["detail"], "")
        unserializable = sink.record(source="s", message="m", detail={"obj": object()})["detail"]
        self.assertTrue(unserializable.startswith("Unserializable value:"))

    def test_mirrors_to_standard_logging(self) -> None:
        sink = LogStore()
        with self.assertLogs("calendar_copilot.diagnostics", level="ERROR") as captured:
            sink.record(source="planner", message="Corrected plan failed validation", level="error")
        self.assertIn("[planner] Corrected plan failed validation", captured.output[0])


if __name__ == "__main__":
    unittest.main()
