"""
Tests for the stored markup variants.
"""

from importer.services.markup import MarkupCleaner

PAGE = """<html><head><title>Widget</title><meta name="x" content="y">
<link rel="stylesheet" href="/css/site.css"><link rel="icon" href="/favicon.ico">
<script src="https://cdn.example/app.js"></script><style>body{}</style></head>
<body><!-- banner --><header><nav><a href="/">Home</a></nav></header>
<div id="root"><main class="page" data-track="1"><h1>Widget</h1>
<p style="color:red">A   fine
widget.</p></main></div>
<vite-error-overlay></vite-error-overlay><script>track()</script></body></html>"""


class TestStrip:
    def test_scripts_styles_and_comments_removed(self):
        stripped = MarkupCleaner().strip(PAGE)
        assert "<script" not in stripped
        assert "<style" not in stripped
        assert "banner" not in stripped
        assert "vite-error-overlay" not in stripped

    def test_head_reduced_to_title(self):
        stripped = MarkupCleaner().strip(PAGE)
        assert "<title>Widget</title>" in stripped
        assert "<meta" not in stripped
        assert "site.css" not in stripped

    def test_hydration_root_unwrapped(self):
        stripped = MarkupCleaner().strip(PAGE)
        assert 'id="root"' not in stripped
        assert '<main class="page"' in stripped

    def test_empty_input(self):
        assert MarkupCleaner().strip("") == ""


class TestAnalysis:
    def test_chrome_removed_and_whitespace_collapsed(self):
        analysis = MarkupCleaner().analysis(PAGE)
        assert "<nav" not in analysis
        assert "<header" not in analysis
        assert "A fine widget." in analysis
        assert analysis.startswith('<main class="page"><h1>Widget</h1>')

    def test_only_whitelisted_attributes_kept(self):
        analysis = MarkupCleaner().analysis(PAGE)
        assert 'class="page"' in analysis
        assert "data-track" not in analysis
        assert "style=" not in analysis

    def test_truncated_to_token_budget(self):
        cleaner = MarkupCleaner(max_tokens=50)
        body = "".join(f"<p>paragraph {i}</p>" for i in range(100))
        analysis = cleaner.analysis(f"<html><body>{body}</body></html>")
        assert len(analysis) <= 100
        assert analysis.endswith(">")


class TestPageDetails:
    def test_title_from_title_tag_then_h1(self):
        cleaner = MarkupCleaner()
        assert cleaner.extract_title(PAGE) == "Widget"
        assert cleaner.extract_title("<body><h1>Only heading</h1></body>") == "Only heading"
        assert cleaner.extract_title("<body></body>") == ""

    def test_collect_assets_resolves_urls(self):
        assets = MarkupCleaner().collect_assets(PAGE, "https://shop.example/products/widget")
        assert assets.stylesheets == ["https://shop.example/css/site.css"]
        assert assets.scripts == ["https://cdn.example/app.js"]
