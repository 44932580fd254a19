"""
Integration tests for the Flask routes
"""
import io

import pytest
from PIL import Image

import app as app_module
import gemini_service
from studio import Studio


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(app_module, "studio", Studio())
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as test_client:
        yield test_client


def upload(client, slot, data, filename="image.png"):
    return client.post(
        f"/api/images/{slot}",
        data={"file": (io.BytesIO(data), filename)},
        content_type="multipart/form-data",
    )


class TestPages:

    @pytest.mark.integration
    def test_index(self, client):
        res = client.get("/")
        assert res.status_code == 200
        assert b"Bovali AI Studio" in res.data

    @pytest.mark.integration
    def test_state(self, client):
        data = client.get("/api/state").get_json()
        assert data["active_tab"] == "generator"
        assert set(data["generator"]["slots"]) == {"render_shot", "pattern", "material"}


class TestImages:

    @pytest.mark.integration
    def test_upload_preview_and_remove(self, client, png_bytes):
        res = upload(client, "render_shot", png_bytes)
        assert res.status_code == 200
        preview_url = res.get_json()["generator"]["slots"]["render_shot"]["preview_url"]

        preview = client.get(preview_url)
        assert preview.status_code == 200
        assert preview.mimetype == "image/png"
        assert preview.data == png_bytes

        res = client.delete("/api/images/render_shot")
        assert res.status_code == 200
        assert res.get_json()["generator"]["slots"]["render_shot"]["preview_url"] is None
        assert client.get(preview_url).status_code == 404

    @pytest.mark.integration
    def test_bad_upload(self, client):
        res = upload(client, "render_shot", b"plain text", "notes.txt")
        assert res.status_code == 400
        assert "error" in res.get_json()

    @pytest.mark.integration
    def test_missing_file_field(self, client):
        res = client.post("/api/images/render_shot", data={}, content_type="multipart/form-data")
        assert res.status_code == 400

    @pytest.mark.integration
    def test_unknown_slot(self, client, png_bytes):
        assert upload(client, "ceiling", png_bytes).status_code == 400


class TestGenerator:

    @pytest.mark.integration
    def test_missing_images(self, client, fake_client):
        res = client.post("/api/generator/generate", json={})
        assert res.status_code == 400
        assert res.get_json()["error"] == "Please upload all three images for this mode."
        fake_client.models.generate_content.assert_not_called()

    @pytest.mark.integration
    def test_pattern_only_generation(self, client, fake_client, make_response, png_bytes, jpeg_bytes):
        fake_client.models.generate_content.return_value = make_response(("image", b"out", "image/png"))
        assert client.post("/api/generator/mode", json={"mode": "PatternOnly"}).status_code == 200
        upload(client, "render_shot", png_bytes)
        upload(client, "pattern", jpeg_bytes, "pattern.jpg")

        res = client.post("/api/generator/generate", json={"width": "", "height": "", "unit": "cm"})

        assert res.status_code == 200
        body = res.get_json()
        assert body["image"] == gemini_service.to_data_url(b"out", "image/png")
        assert body["state"]["generator"]["status"] == "succeeded"
        assert body["state"]["generator"]["error"] is None

    @pytest.mark.integration
    def test_text_only_answer_is_bad_gateway(self, client, fake_client, make_response, png_bytes):
        fake_client.models.generate_content.return_value = make_response(("text", "Too dark to see."))
        client.post("/api/generator/mode", json={"mode": "MaterialOnly"})
        upload(client, "render_shot", png_bytes)
        upload(client, "material", png_bytes)

        res = client.post("/api/generator/generate", json={})

        assert res.status_code == 502
        assert "Too dark to see." in res.get_json()["error"]

    @pytest.mark.integration
    def test_invalid_mode(self, client):
        assert client.post("/api/generator/mode", json={"mode": "Mosaic"}).status_code == 400

    @pytest.mark.integration
    def test_surface(self, client):
        res = client.post("/api/generator/surface", json={"surface": "Walls"})
        assert res.get_json()["generator"]["surface_type"] == "Walls"


class TestExtractor:

    @pytest.mark.integration
    def test_process_and_download(self, client, fake_client, make_response, png_bytes):
        fake_client.models.generate_content.return_value = make_response(("image", png_bytes, "image/png"))
        client.post("/api/tab", json={"tab": "extractor"})
        client.post("/api/extractor/type", json={"type": "Pattern"})
        assert client.get("/api/extractor/download").status_code == 404
        upload(client, "source", png_bytes)

        res = client.post("/api/extractor/process", json={"width": "60", "height": "60", "unit": "cm"})
        assert res.status_code == 200

        download = client.get("/api/extractor/download")
        assert download.status_code == 200
        assert download.mimetype == "image/png"
        assert "bovali_processed_pattern.png" in download.headers["Content-Disposition"]
        assert Image.open(io.BytesIO(download.data)).format == "PNG"


class TestChat:

    @pytest.mark.integration
    def test_chat_round_trip(self, client, chat_reply):
        chat_reply("Our oak is FSC certified.")

        res = client.post("/api/chat", json={"message": "Is the oak sustainable?"})

        assert res.status_code == 200
        body = res.get_json()
        assert body["reply"] == {"id": 3, "text": "Our oak is FSC certified.", "sender": "bot"}
        assert len(body["state"]["chat"]["messages"]) == 3

    @pytest.mark.integration
    def test_empty_message(self, client):
        assert client.post("/api/chat", json={"message": ""}).status_code == 400

    @pytest.mark.integration
    def test_reset_starts_new_conversation(self, client, fake_client, chat_reply):
        chat_reply("Hello again.")
        client.post("/api/chat", json={"message": "hi"})

        res = client.post("/api/chat/reset")

        assert res.status_code == 200
        assert [m["sender"] for m in res.get_json()["chat"]["messages"]] == ["bot"]
        client.post("/api/chat", json={"message": "hi"})
        assert fake_client.chats.create.call_count == 2


class TestRequestBodies:

    @pytest.mark.integration
    @pytest.mark.parametrize("body", [["extractor"], "extractor", 42, None])
    def test_non_object_json_is_a_validation_error(self, client, body):
        """Test JSON bodies that are not objects get a 400, not a crash"""
        res = client.post("/api/tab", json=body)

        assert res.status_code == 400
        assert "error" in res.get_json()

    @pytest.mark.integration
    def test_non_object_json_uses_defaults(self, client, fake_client):
        res = client.post("/api/generator/generate", json=["60", "120"])

        assert res.status_code == 400
        assert res.get_json()["error"] == "Please upload all three images for this mode."


class TestSharedStudio:

    @pytest.mark.integration
    def test_every_client_sees_the_same_studio(self, client):
        """Test the studio state is process-wide, not per browser"""
        client.post("/api/tab", json={"tab": "extractor"})

        with app_module.app.test_client() as other:
            assert other.get("/api/state").get_json()["active_tab"] == "extractor"
