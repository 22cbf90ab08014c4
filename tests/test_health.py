"""
Tests for health check, model listing and unknown endpoints.
"""
from grappa import should

from nimbridge.mapping import MODEL_MAPPING


def test_health_check(test_client):
    """Test health check endpoint"""
    response = test_client.get("/health")
    response.status_code | should.equal(200)
    response.headers["content-type"] | should.equal("application/json")
    response.json() | should.equal(
        {
            "status": "ok",
            "service": "OpenAI to NVIDIA NIM Proxy",
            "reasoning_display": False,
            "thinking_mode": False,
        }
    )


def test_health_check_reports_toggles(test_client_show_reasoning):
    data = test_client_show_reasoning.get("/health").json()
    data["reasoning_display"] | should.be.true
    data["thinking_mode"] | should.be.true


def test_list_models(test_client):
    response = test_client.get("/v1/models")
    response.status_code | should.equal(200)
    data = response.json()
    data["object"] | should.equal("list")
    [model["id"] for model in data["data"]] | should.equal(list(MODEL_MAPPING))
    for model in data["data"]:
        model | should.have.keys("id", "object", "created", "owned_by")
        model["object"] | should.equal("model")
        model["owned_by"] | should.equal("nvidia-nim-proxy")


def test_unknown_endpoint(test_client):
    response = test_client.get("/v1/embeddings")
    response.status_code | should.equal(404)
    response.json() | should.equal(
        {
            "error": {
                "message": "Endpoint /v1/embeddings not found",
                "type": "invalid_request_error",
                "code": 404,
            }
        }
    )


def test_wrong_method_on_known_endpoint(test_client):
    response = test_client.delete("/v1/chat/completions")
    response.status_code | should.equal(404)
    response.json()["error"]["message"] | should.equal(
        "Endpoint /v1/chat/completions not found"
    )
