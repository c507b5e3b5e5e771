import pytest

from overlay.index import MenuItem, SearchIndex


@pytest.fixture
def items():
    """Items as the extraction client delivers them: functions, then categories."""
    return [
        MenuItem("Course Registration", "UAA002", "function"),
        MenuItem("Grade Report", "GRD010", "function"),
        MenuItem("Library", "LIB001", "function"),
        MenuItem("教務系統", None, "category"),
        MenuItem("Academics", None, "category"),
        MenuItem("編輯我的最愛", None, "category"),
    ]


@pytest.fixture
def index(items):
    return SearchIndex.build(items)


class TestBuild:
    """Test SearchIndex.build()."""

    def test_favorites_header_excluded(self, index):
        """Test that the favourites-editor header is not indexed."""
        assert "編輯我的最愛" not in [i.text for i in index.items]
        assert len(index) == 5

    def test_favorites_label_as_function_kept(self):
        """Test that only the category header is excluded, not a function."""
        index = SearchIndex.build([MenuItem("編輯我的最愛", "FAV001", "function")])
        assert len(index) == 1

    def test_empty_text_dropped(self):
        """Test that blank items are dropped."""
        index = SearchIndex.build([MenuItem("   ", "X", "function"), MenuItem("A", "Y", "function")])
        assert [i.text for i in index.items] == ["A"]

    def test_order_preserved(self, index, items):
        """Test that extraction order is kept."""
        assert list(index.items) == items[:5]

    def test_custom_favorites_label(self, items):
        """Test that the excluded label is configurable."""
        index = SearchIndex.build(items, favorites_label="Academics")
        texts = [i.text for i in index.items]
        assert "Academics" not in texts
        assert "編輯我的最愛" in texts


class TestQuery:
    """Test SearchIndex.query()."""

    def test_substring_match(self, index):
        """Test the case-insensitive substring match."""
        assert [i.text for i in index.query("re")] == ["Course Registration", "Grade Report"]

    def test_case_insensitive(self, index):
        """Test that query case does not matter."""
        assert [i.text for i in index.query("GRADE")] == ["Grade Report"]

    def test_empty_query_means_no_filter(self, index):
        """Test that empty and blank queries mean no filter."""
        assert index.query("") is None
        assert index.query("   ") is None

    def test_no_match_is_empty_list(self, index):
        """Test that an active filter with no hits returns an empty list."""
        assert index.query("zzz") == []

    def test_categories_never_returned(self, index):
        """Test that category items never match."""
        assert index.query("Academics") == []
        assert index.query("教務") == []

    def test_query_trimmed(self, index):
        """Test that surrounding spaces in the query are ignored."""
        assert [i.text for i in index.query("  library ")] == ["Library"]

    def test_unicode_query(self):
        """Test matching on Chinese labels."""
        index = SearchIndex.build([MenuItem("選課系統", "S01", "function"), MenuItem("成績查詢", "S02", "function")])
        assert [i.code for i in index.query("選課")] == ["S01"]

    def test_results_are_a_fresh_list(self, index):
        """Test that callers cannot mutate the index through results."""
        first = index.query("re")
        first.clear()
        assert len(index.query("re")) == 2
