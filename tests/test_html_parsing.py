"""Tests for markup parsing and structured-data analysis."""

from siteaudit.utils.html_parsing import analyze_structured_data, parse_html, visible_text

PAGE = "https://a.test/blog/post"

MARKUP = """\
<html><head>
  <title> Post title </title>
  <meta name="description" content="A post">
  <link rel="canonical" href="/blog/post">
  <link rel="stylesheet" href="http://cdn.test/site.css">
  <link rel="alternate" href="http://a.test/feed.xml">
  <meta property="og:title" content="Post">
  <meta property="og:image" content="">
  <meta name="twitter:card" content="summary">
  <script src="http://cdn.test/app.js"></script>
  <style>.hero { background: url('http://cdn.test/hero.jpg'); }</style>
</head><body>
  <h1>Heading</h1>
  <a href="/about">About</a><a href="http://other.test/">Other</a><a href="#top">Top</a>
  <img src="https://a.test/a.png" alt="A"><img src="http://cdn.test/b.png">
  <div style="background-image: url(http://cdn.test/bg.png)">Body text here</div>
</body></html>
"""


class TestParseHtml:
    def test_head_and_body_signals(self):
        parsed = parse_html(MARKUP, PAGE)
        assert parsed["title"] == "Post title"
        assert parsed["canonical_url"] == "https://a.test/blog/post"
        assert parsed["h1"] == ["Heading"]
        assert parsed["links"] == ["https://a.test/about", "http://other.test/"]
        assert parsed["images"][1] == {"src": "http://cdn.test/b.png", "alt": ""}

    def test_social_tags_skip_empty_content(self):
        parsed = parse_html(MARKUP, PAGE)
        assert parsed["og_tags"] == ["og:title"]
        assert parsed["twitter_tags"] == ["twitter:card"]

    def test_insecure_subresources(self):
        parsed = parse_html(MARKUP, PAGE)
        assert parsed["insecure_resources"] == [
            "http://cdn.test/app.js",
            "http://cdn.test/b.png",
            "http://cdn.test/site.css",
            "http://cdn.test/bg.png",
            "http://cdn.test/hero.jpg",
        ]
        # Plain links and feeds are navigation, not subresources.
        assert "http://other.test/" not in parsed["insecure_resources"]
        assert "http://a.test/feed.xml" not in parsed["insecure_resources"]

    def test_visible_text_drops_scripts(self):
        assert visible_text("<p>Hi <script>var x = 1;</script>there</p>") == "Hi there"


class TestStructuredData:
    def test_identity_schema_fields(self):
        info = analyze_structured_data(['{"@type": "Organization", "name": "Acme"}'])
        assert info.has_identity_schema
        assert info.missing_fields == ("url",)

    def test_invalid_block_skipped(self):
        info = analyze_structured_data(["{not json", '{"@graph": [{"@type": "WebPage"}]}'])
        assert info.types == ("WebPage",)
        assert not info.has_identity_schema
