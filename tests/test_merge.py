import unittest

from trace_storage.core.data.dependency_data import DependencyLink
from trace_storage.storage.merge import merge_dependency_links, merge_trace_rows
from trace_storage.storage.span_consumer import SearchRow, merge_search_rows


def row(trace_id, timestamp):
    return {"trace_id": trace_id, "trace_id_64": trace_id[-16:], "span_timestamp": timestamp}


class TestMergeTraceRows(unittest.TestCase):
    def test_one_id_per_trace_newest_first(self):
        rows = [row("a", 100), row("b", 300), row("a", 500), row("c", 200)]
        self.assertEqual(merge_trace_rows(rows, 10), ["a", "b", "c"])
        self.assertEqual(merge_trace_rows(rows, 2), ["a", "b"])

    def test_ties_keep_first_seen_order(self):
        self.assertEqual(merge_trace_rows([row("x", 100), row("y", 100)], 10), ["x", "y"])
        self.assertEqual(merge_trace_rows([row("y", 100), row("x", 100)], 10), ["y", "x"])

    def test_same_input_same_output(self):
        rows = [row(f"{i:02x}", i % 3) for i in range(30)]
        self.assertEqual(merge_trace_rows(rows, 7), merge_trace_rows(list(rows), 7))

    def test_merges_on_lower_64_bits(self):
        rows = [row("aaaaaaaaaaaaaaaa1234567890abcdef", 1), row("bbbbbbbbbbbbbbbb1234567890abcdef", 2)]
        self.assertEqual(merge_trace_rows(rows, 10, "trace_id_64"), ["1234567890abcdef"])

    def test_missing_timestamp_ranks_last(self):
        rows = [{"trace_id": "a"}, row("b", 1)]
        self.assertEqual(merge_trace_rows(rows, 10), ["b", "a"])

    def test_non_positive_limit(self):
        self.assertEqual(merge_trace_rows([row("a", 1)], 0), [])


class TestMergeSearchRows(unittest.TestCase):
    def test_keeps_largest_ttl_per_pair(self):
        rows = [
            SearchRow("service-span", "frontend", "get /", 100),
            SearchRow("service-span", "frontend", "get /", 300),
            SearchRow("service-span", "frontend", "get /", 200),
            SearchRow("service-span", "frontend", "post /", 50),
        ]
        merged = merge_search_rows(rows)
        self.assertEqual(len(merged), 2)
        by_value = {r.value: r.ttl for r in merged}
        self.assertEqual(by_value, {"get /": 300, "post /": 50})


class TestMergeDependencyLinks(unittest.TestCase):
    def test_counts_are_summed_per_pair(self):
        first = DependencyLink(parent="a", child="b", call_count=1)
        links = [
            first,
            DependencyLink(parent="a", child="b", call_count=2, error_count=1),
            DependencyLink(parent="b", child="c", call_count=5),
        ]
        merged = {link.pair: link for link in merge_dependency_links(links)}
        self.assertEqual(merged[("a", "b")].call_count, 3)
        self.assertEqual(merged[("a", "b")].error_count, 1)
        self.assertEqual(merged[("b", "c")].call_count, 5)
        # inputs are not modified
        self.assertEqual(first.call_count, 1)

    def test_merging_twice_is_additive(self):
        day1 = [DependencyLink(parent="a", child="b", call_count=4, error_count=1)]
        day2 = [DependencyLink(parent="a", child="b", call_count=6, error_count=2)]
        merged = merge_dependency_links(merge_dependency_links(day1) + merge_dependency_links(day2))
        self.assertEqual(len(merged), 1)
        self.assertEqual((merged[0].call_count, merged[0].error_count), (10, 3))


if __name__ == "__main__":
    unittest.main()
