"""
Tests for Facebook content shaping and publishing.
"""
import pytest

from smap.exceptions import PlatformError, PlatformNotConnectedError, TokenExpiredError
from smap.models import PlatformConnection, ScheduledPost
from smap.worker.formatting import html_to_plain_text, is_remote_url, transmittable_media
from smap.worker.platform_publish import (
    FacebookPublisher,
    PlatformPublisher,
    PublishContent,
    facebook_request,
)


class TestHtmlToPlainText:

    def test_paragraphs_breaks_and_bullets(self):
        assert html_to_plain_text("<p>Hello</p><br><li>World</li>") == "Hello\n\n• World"

    def test_entities_decoded(self):
        assert html_to_plain_text("Fish&nbsp;&amp;&nbsp;chips &lt;3 &quot;yum&quot; &#39;ok&#39;") == \
            "Fish & chips <3 \"yum\" 'ok'"

    def test_unknown_tags_stripped(self):
        assert html_to_plain_text('<strong>Bold</strong> <a href="https://x.y">link</a>') == "Bold link"

    def test_newline_runs_collapse(self):
        assert html_to_plain_text("<p>One</p><br/><br /><br><p>Two</p>") == "One\n\nTwo"

    def test_list(self):
        markup = "<ul><li>Coffee</li><li class='x'>Tea</li></ul>"
        assert html_to_plain_text(markup) == "• Coffee\n• Tea"

    def test_empty(self):
        assert html_to_plain_text("") == ""
        assert html_to_plain_text(None) == ""


class TestMediaUrls:

    def test_only_http_urls(self):
        urls = ["https://cdn.example.com/a.jpg", "data:image/png;base64,AAAA", "/local.png", "http://x.y/v.mp4", ""]
        assert transmittable_media(urls) == ["https://cdn.example.com/a.jpg", "http://x.y/v.mp4"]

    def test_is_remote_url(self):
        assert is_remote_url("HTTPS://EXAMPLE.COM")
        assert not is_remote_url("ftp://example.com")


class TestFacebookRequest:
    """Endpoint selection by media type."""

    def test_link_post(self):
        path, body = facebook_request("42", PublishContent("<p>Read</p>", link="https://x.y", media_type="link"))
        assert path == "42/feed"
        assert body == {"message": "Read", "link": "https://x.y"}

    def test_image_post(self):
        content = PublishContent("Look", media_urls=["data:image/png;base64,AA", "https://x.y/a.jpg"], media_type="image")
        path, body = facebook_request("42", content)
        assert path == "42/photos"
        assert body == {"message": "Look", "url": "https://x.y/a.jpg"}

    def test_video_post(self):
        path, body = facebook_request("42", PublishContent("Watch", media_urls=["https://x.y/v.mp4"], media_type="video"))
        assert path == "42/videos"
        assert body["file_url"] == "https://x.y/v.mp4"

    def test_image_without_usable_url_falls_back_to_feed(self):
        content = PublishContent("Look", link="https://x.y", media_urls=["data:image/png;base64,AA"], media_type="image")
        path, body = facebook_request("42", content)
        assert path == "42/feed"
        assert body == {"message": "Look"}

    def test_link_only_sent_for_link_posts(self):
        path, body = facebook_request("42", PublishContent("Hi", link="https://x.y"))
        assert path == "42/feed"
        assert "link" not in body

    def test_plain_text_post(self):
        path, body = facebook_request("42", PublishContent("Hi"))
        assert path == "42/feed"
        assert body == {"message": "Hi"}


@pytest.fixture
def page():
    return PlatformConnection(
        platform="facebook",
        is_connected=True,
        page_id="42",
        page_access_token="page-token",
    )


class TestFacebookPublisher:

    def test_publish(self, http, page):
        http.queue(200, {"id": "42_99"})
        result = FacebookPublisher(session=http).publish(page, PublishContent("<p>Hi</p>"))

        assert result.post_id == "42_99"
        assert result.url == "https://facebook.com/42_99"
        method, url, kwargs = http.requests[0]
        assert method == "POST"
        assert url.endswith("/42/feed")
        assert kwargs["json"] == {"message": "Hi", "access_token": "page-token"}

    def test_photo_response_uses_post_id(self, http, page):
        http.queue(200, {"id": "photo_1", "post_id": "42_100"})
        result = FacebookPublisher(session=http).publish(
            page, PublishContent("Pic", media_urls=["https://x.y/a.jpg"], media_type="image")
        )
        assert result.post_id == "photo_1"

        http.queue(200, {"post_id": "42_101"})
        result = FacebookPublisher(session=http).publish(page, PublishContent("Pic"))
        assert result.post_id == "42_101"

    def test_missing_id_is_malformed(self, http, page):
        http.queue(200, {"success": True})
        with pytest.raises(PlatformError, match="post id"):
            FacebookPublisher(session=http).publish(page, PublishContent("Hi"))

    def test_graph_error(self, http, page):
        http.queue(400, {"error": {"message": "(#200) Permissions error", "code": 200}})
        with pytest.raises(PlatformError, match="Permissions error") as exc:
            FacebookPublisher(session=http).publish(page, PublishContent("Hi"))
        assert exc.value.status_code == 400

    def test_expired_token(self, http, page):
        http.queue(400, {"error": {"message": "Session has expired", "code": 190}})
        with pytest.raises(TokenExpiredError):
            FacebookPublisher(session=http).publish(page, PublishContent("Hi"))

    def test_invalid_json(self, http, page):
        http.queue(502, ValueError("no json"))
        with pytest.raises(PlatformError, match="invalid JSON"):
            FacebookPublisher(session=http).publish(page, PublishContent("Hi"))

    def test_stored_post_keeps_its_page(self, http, page):
        http.queue(200, {"id": "7_1"})
        FacebookPublisher(session=http).publish(page, PublishContent("Hi", page_id="7"))
        assert http.requests[0][1].endswith("/7/feed")

    def test_from_post_carries_page(self):
        post = ScheduledPost(message="Hi", page_id="7", media_urls=None, media_type=None)
        content = PublishContent.from_post(post)
        assert content.page_id == "7"
        assert content.media_type == "none"

    def test_not_connected(self, http, page):
        page.page_access_token = None
        with pytest.raises(PlatformNotConnectedError):
            FacebookPublisher(session=http).publish(page, PublishContent("Hi"))
        assert http.requests == []


class TestPlatformPublisher:

    def test_unsupported_platform(self, page):
        with pytest.raises(PlatformError, match="not supported"):
            PlatformPublisher().publish("tiktok", page, PublishContent("Hi"))

    def test_supported_platforms(self):
        assert PlatformPublisher().supported_platforms() == ["facebook"]
