"""
Tests for vision, image generation and their saved history.
"""
import main

PNG = "data:image/png;base64,iVBORw0KGgo="


def _completion(message):
    return {"id": "gen-1", "choices": [{"message": message, "finish_reason": "stop"}]}


class TestVisionAPI:
    def test_returns_upstream_json_verbatim(self, client, upstream):
        completion = _completion({"role": "assistant", "content": "Una pista de atletismo."})
        upstream.queue_json(completion)

        response = client.post("/api/vision", json={"imageUrl": "https://example.com/pista.jpg"})

        assert response.status_code == 200
        assert response.json() == completion
        payload = upstream.requests[0]
        assert "stream" not in payload
        text, image = payload["messages"][0]["content"]
        assert text == {"type": "text", "text": "Describe esta imagen en detalle."}
        assert image["image_url"]["url"] == "https://example.com/pista.jpg"

    def test_bare_base64_becomes_a_data_url(self, client, upstream):
        upstream.queue_json(_completion({"role": "assistant", "content": "ok"}))

        client.post("/api/vision", json={"imageBase64": "AAAA", "prompt": "¿Qué zapatillas son?"})

        text, image = upstream.requests[0]["messages"][0]["content"]
        assert text["text"] == "¿Qué zapatillas son?"
        assert image["image_url"]["url"] == "data:image/jpeg;base64,AAAA"

    def test_image_is_required(self, client, upstream):
        response = client.post("/api/vision", json={"prompt": "hola"})

        assert response.status_code == 400
        assert upstream.requests == []

    def test_upstream_error_is_passed_through(self, client, upstream):
        upstream.queue_error(402, '{"error":{"message":"Insufficient credits"}}')

        response = client.post("/api/vision", json={"imageUrl": "https://example.com/a.jpg"})

        assert response.status_code == 402
        assert response.json()["error"] == '{"error":{"message":"Insufficient credits"}}'

    def test_history(self, client):
        saved = client.post("/api/vision-history", json={
            "imageUrl": PNG,
            "prompt": None,
            "model": "openai/gpt-4o",
            "response": "Una pista.",
        }).json()

        history = client.get("/api/vision-history").json()
        assert [h["id"] for h in history] == [saved["id"]]
        assert history[0]["imageUrl"] == PNG


class TestImageGenerationAPI:
    def test_image_from_message_images(self, client, upstream):
        upstream.queue_json(_completion({
            "role": "assistant",
            "content": "Aquí está",
            "images": [{"type": "image_url", "image_url": {"url": PNG}}],
        }))

        response = client.post("/api/image-generation", json={"prompt": "Un corredor al amanecer"})

        assert response.json() == {"data": [{"url": PNG}]}
        payload = upstream.requests[0]
        assert payload["modalities"] == ["text", "image"]
        assert payload["messages"] == [{"role": "user", "content": "Un corredor al amanecer"}]

    def test_edit_mode_sends_the_source_image_first(self, client, upstream):
        upstream.queue_json(_completion({"role": "assistant", "content": f"Hecho: {PNG}"}))

        response = client.post("/api/image-generation", json={"prompt": "Ponle gorra", "sourceImage": "AAAA"})

        assert response.json() == {"data": [{"url": PNG}]}
        image, text = upstream.requests[0]["messages"][0]["content"]
        assert image["image_url"]["url"] == "data:image/jpeg;base64,AAAA"
        assert text == {"type": "text", "text": "Ponle gorra"}

    def test_no_image_is_a_400_with_debug_info(self, client, upstream):
        upstream.queue_json(_completion({"role": "assistant", "content": "No puedo generar eso."}))

        response = client.post("/api/image-generation", json={"prompt": "x"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "No se generó imagen"
        assert body["debug"] == {"images": None, "content": "No puedo generar eso."}

    def test_gallery(self, client):
        client.post("/api/images", json={"prompt": "uno", "model": "m", "imageUrl": PNG})
        client.post("/api/images", json={"prompt": "dos", "model": "m", "imageUrl": PNG})

        assert [i["prompt"] for i in client.get("/api/images").json()] == ["dos", "uno"]


class TestHealth:
    def test_ping(self, client):
        assert client.get("/ping").json() == {"pong": True}

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_detailed_health_without_redis_is_degraded(self, client, monkeypatch):
        monkeypatch.setattr(main, "get_redis_client", lambda: None)

        data = client.get("/health/detailed").json()

        assert data["status"] == "degraded"
        assert data["checks"]["database"]["status"] == "healthy"
        assert data["checks"]["redis"]["status"] == "unavailable"
        assert data["openrouter_configured"] is True

    def test_detailed_health_with_redis(self, client, monkeypatch):
        class FakeRedis:
            def ping(self):
                return True

        monkeypatch.setattr(main, "get_redis_client", lambda: FakeRedis())

        data = client.get("/health/detailed").json()

        assert data["status"] == "healthy"
        assert data["checks"]["redis"]["status"] == "healthy"

    def test_security_headers(self, client):
        response = client.get("/ping")
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-frame-options"] == "DENY"
