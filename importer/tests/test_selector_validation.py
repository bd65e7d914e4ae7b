"""
Tests for selector validation against group members.
"""

from importer.services.selector_validation import SelectorValidator

PAGE_A = '<body><h1>Widget</h1><span class="price">$10</span></body>'
PAGE_B = "<body><h1>Gadget</h1></body>"


class TestSelectorValidator:
    def test_missing_field_on_one_of_two_samples_is_brittle(self):
        validator = SelectorValidator()
        report = validator.validate(
            {"title": {"selector": "h1"}, "price": {"selector": ".price"}},
            [("https://shop.example/a", PAGE_A), ("https://shop.example/b", PAGE_B)],
        )

        assert report["title"].success_rate == 1.0
        assert report["title"].is_brittle is False
        assert report["price"].success_rate == 0.5
        assert report["price"].is_brittle is True
        assert report["price"].is_invalid is False
        assert report["price"].failed_urls == ["https://shop.example/b"]

    def test_selector_matching_nothing_is_invalid(self):
        samples = [(f"https://shop.example/{i}", PAGE_B) for i in range(5)]
        report = SelectorValidator().validate({"price": {"selector": ".price"}}, samples)

        result = report["price"]
        assert result.samples_tested == 5
        assert result.success_rate == 0
        assert result.is_invalid is True
        assert result.density_score == 0.0
        assert len(result.failed_urls) == 5

    def test_at_most_five_samples_tested(self):
        samples = [(f"https://shop.example/{i}", PAGE_A) for i in range(8)]
        report = SelectorValidator().validate({"title": {"selector": "h1"}}, samples)
        assert report["title"].samples_tested == 5

    def test_prose_field_low_density(self):
        nav_like = '<body><div class="content"><a href="/1">one</a><a href="/2">two</a></div></body>'
        report = SelectorValidator().validate(
            {"content": {"selector": "div.content"}}, [("https://shop.example/x", nav_like)]
        )
        assert report["content"].is_low_density is True
        assert report["content"].density_score < 0

    def test_prose_field_with_paragraphs_is_dense(self):
        text = "word " * 100
        article = f'<body><div class="content"><h2>Intro</h2><p>{text}</p><p>{text}</p></div></body>'
        report = SelectorValidator().validate(
            {"content": {"selector": "div.content"}}, [("https://shop.example/x", article)]
        )
        assert report["content"].is_low_density is False
        assert report["content"].density_score >= 5

    def test_low_density_only_flags_prose_fields(self):
        report = SelectorValidator().validate(
            {"title": {"selector": "h1"}}, [("https://shop.example/a", PAGE_A)]
        )
        assert report["title"].is_low_density is False

    def test_bad_selector_counts_as_no_match(self):
        report = SelectorValidator().validate(
            {"title": {"selector": "h1[["}}, [("https://shop.example/a", PAGE_A)]
        )
        assert report["title"].is_invalid is True

    def test_failures_lists_fields_needing_attention(self):
        validator = SelectorValidator()
        report = validator.validate(
            {"title": {"selector": "h1"}, "price": {"selector": ".price"}},
            [("https://shop.example/a", PAGE_A), ("https://shop.example/b", PAGE_B)],
        )
        failures = validator.failures(report)
        assert [f["field"] for f in failures] == ["price"]
