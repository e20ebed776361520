"""Drive the proxies against the local mock provider through Flask's test client."""
from urllib.parse import urlparse

from editor_proxy.background_proxy import BackgroundRemovalProxy
from editor_proxy.config import Settings
from editor_proxy.image_proxy import ImageGenerationProxy
from editor_proxy.kling_auth import KlingTokenManager
from editor_proxy.video_proxy import VideoProxy
from scripts import mock_provider


class MockResp:
    def __init__(self, resp):
        self.status_code = resp.status_code
        self.text = resp.get_data(as_text=True)
        self.headers = resp.headers
        self._resp = resp

    def json(self):
        data = self._resp.get_json(silent=True)
        if data is None:
            raise ValueError("No JSON object could be decoded")
        return data


def route_to_mock(monkeypatch):
    client = mock_provider.app.test_client()

    def fake_post(url, json=None, headers=None, timeout=None):
        return MockResp(client.post(urlparse(url).path, json=json, headers={"Authorization": headers["Authorization"]}))

    def fake_get(url, headers=None, timeout=None):
        return MockResp(client.get(urlparse(url).path, headers={"Authorization": headers["Authorization"]}))

    monkeypatch.setattr("requests.post", fake_post)
    monkeypatch.setattr("requests.get", fake_get)


def test_generate_then_poll_until_complete(monkeypatch):
    route_to_mock(monkeypatch)
    monkeypatch.setenv("MOCK_TASK_SECONDS", "0")

    settings = Settings(kling_access_key="ak", kling_secret_key="sk", kling_api_base="http://mock")
    proxy = VideoProxy(settings, KlingTokenManager("ak", "sk"))

    body, status = proxy.generate({"imageUrl": "https://x/a.png", "prompt": "a dog running", "duration": 5})
    assert status == 200
    assert body["taskId"].startswith("task_")
    assert body["estimatedTime"] == 50

    body, status = proxy.check_status(body["taskId"])
    assert status == 200
    assert body["status"] == "completed"
    assert body["videoUrl"].endswith(".mp4")


def test_unknown_task_is_not_found(monkeypatch):
    route_to_mock(monkeypatch)

    settings = Settings(kling_access_key="ak", kling_secret_key="sk", kling_api_base="http://mock")
    body, status = VideoProxy(settings, KlingTokenManager("ak", "sk")).check_status("missing")

    assert status == 400
    assert body["errorCode"] == "TASK_NOT_FOUND"


def test_background_removal_against_mock(monkeypatch):
    route_to_mock(monkeypatch)

    body, status = BackgroundRemovalProxy(Settings(fal_key="k", fal_api_base="http://mock")).remove_background({"imageUrl": "https://x/a.png"})
    assert status == 200
    assert body["imageUrl"].endswith("-nobg.png")


def test_background_removal_without_key_is_auth_failure(monkeypatch):
    route_to_mock(monkeypatch)

    body, status = BackgroundRemovalProxy(Settings(fal_key="", fal_api_base="http://mock")).remove_background({"imageUrl": "https://x/a.png"})
    assert status == 400
    assert body["errorCode"] == "AUTH_FAILED"


def test_image_generation_against_mock(monkeypatch):
    route_to_mock(monkeypatch)

    proxy = ImageGenerationProxy(Settings(fal_key="k", fal_api_base="http://mock"))
    body, status = proxy.generate({"prompt": "a lighthouse at dusk", "num_images": 2})

    assert status == 200
    assert body["modelUsed"] == "fal-ai/flux-pro/v1.1"
    assert len(body["data"]["images"]) == 2
    assert body["requestId"].startswith("req_")
