"""Tests for the HTTP and WebSocket endpoints."""
import json

import pytest
from starlette.websockets import WebSocketDisconnect

from app.core.dependencies import get_relay_engine
from app.main import app
from app.services.relay.models import CompletionResult

from conftest import StaticConfigProvider, build_engine


def save_config(client, **overrides):
    body = {
        "sessionToken": "tok_abc",
        "systemPrompt": "You are terse.",
        "voice": "nova",
        "openaiApiKey": "sk-student-1234567890",
    }
    body.update(overrides)
    return client.post("/api/student-config", json=body)


class TestHealth:
    """Service info endpoints."""

    def test_health(self, test_client):
        """Test health check endpoint."""
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}

    def test_root(self, test_client):
        """Test root endpoint advertises the WebSocket path."""
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.json()["websocket"].startswith("/ws")


class TestStudentConfigApi:
    """Saving and reading student configuration."""

    def test_save_and_get(self, test_client):
        """Test saving a configuration and reading it back with the key masked."""
        response = save_config(
            test_client,
            tools=[
                {"name": "book", "description": "Book a slot", "webhookUrl": "https://hooks.example.com/book"},
            ],
        )

        assert response.status_code == 200
        data = response.json()
        assert data["systemPrompt"] == "You are terse."
        assert data["hasOpenaiApiKey"] is True
        assert data["openaiApiKeyPreview"] == "sk-s...7890"
        assert "openaiApiKey" not in data
        assert data["tools"] == [
            {
                "type": "function",
                "function": {
                    "name": "book",
                    "description": "Book a slot",
                    "parameters": {"type": "object", "properties": {}},
                },
                "webhookUrl": "https://hooks.example.com/book",
            }
        ]

        fetched = test_client.get("/api/student-config", params={"sessionToken": "tok_abc"})
        assert fetched.status_code == 200
        assert fetched.json() == data

    def test_invalid_tool_rejected(self, test_client):
        """Test saving an invalid tool definition returns 400."""
        response = save_config(test_client, tools=[{"description": "no name"}])

        assert response.status_code == 400

    def test_blank_token_rejected(self, test_client):
        """Test saving with a blank session token returns 400."""
        response = save_config(test_client, sessionToken="  ")

        assert response.status_code == 400

    def test_missing_config(self, test_client):
        """Test reading an unknown configuration returns 404."""
        response = test_client.get("/api/student-config", params={"sessionToken": "tok_missing"})

        assert response.status_code == 404


class TestConversationsApi:
    """Conversation history endpoints."""

    def test_empty_list(self, test_client):
        """Test listing conversations for a new token."""
        response = test_client.get("/api/conversations", params={"sessionToken": "tok_abc"})

        assert response.status_code == 200
        assert response.json() == {"success": True, "conversations": [], "count": 0}

    def test_token_required(self, test_client):
        """Test listing conversations requires a session token."""
        response = test_client.get("/api/conversations")

        assert response.status_code == 422

    def test_missing_conversation(self, test_client):
        """Test fetching an unknown conversation returns 404."""
        response = test_client.get("/api/conversations/42", params={"sessionToken": "tok_abc"})

        assert response.status_code == 404


class TestRelayWebSocket:
    """End-to-end relay over the WebSocket route."""

    def test_prompt_gets_text_reply(self, test_client, api_completion_client):
        """Test a prompt over the WebSocket gets a text reply."""
        save_config(test_client)
        api_completion_client.responses = [CompletionResult(content="I don't have real-time access.")]

        with test_client.websocket_connect("/ws?sessionToken=tok_abc") as websocket:
            websocket.send_text(
                json.dumps({"type": "setup", "callSid": "CA1", "from": "+1555", "to": "+1666", "direction": "inbound"})
            )
            websocket.send_text(json.dumps({"type": "dtmf", "digit": "1"}))
            websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "What time is it?"}))

            reply = websocket.receive_json()

        assert reply == {"type": "text", "token": "I don't have real-time access.", "last": True}
        assert api_completion_client.api_key == "sk-student-1234567890"
        assert api_completion_client.calls[0]["system_prompt"] == "You are terse."

    def test_malformed_frame_keeps_connection_open(self, test_client, api_completion_client):
        """Test a malformed frame does not close the connection."""
        api_completion_client.responses = [CompletionResult(content="Still here.")]

        with test_client.websocket_connect("/ws") as websocket:
            websocket.send_text("not json")
            websocket.send_text(json.dumps({"type": "prompt", "voicePrompt": "Hello?"}))

            reply = websocket.receive_json()

        assert reply["token"] == "Still here."

    def test_missing_credential_sends_error_and_closes(self, test_client):
        """Test a session without any API key gets an error and is closed."""
        app.dependency_overrides[get_relay_engine] = lambda: build_engine(
            provider=StaticConfigProvider(), default_api_key=None
        )

        with test_client.websocket_connect("/ws?sessionToken=tok_abc") as websocket:
            message = websocket.receive_json()
            assert message["type"] == "error"
            assert "OpenAI API key" in message["error"]

            with pytest.raises(WebSocketDisconnect):
                websocket.receive_text()


class TestVoiceWebhook:
    """TwiML returned to Twilio for incoming calls."""

    def test_incoming_call_uses_defaults_without_token(self, test_client):
        """Test TwiML for a call without a session token."""
        response = test_client.post("/webhooks/voice/incoming")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("application/xml")
        assert "<ConversationRelay" in response.text
        assert 'url="wss://testserver/ws"' in response.text
        assert 'voice="Polly.Joanna-Neural"' in response.text
        assert 'dtmfDetection="true"' in response.text

    def test_incoming_call_uses_student_config(self, test_client):
        """Test TwiML uses the student's greeting and voice."""
        save_config(
            test_client,
            greeting="Hi <there> & welcome",
            voice="Matthew",
            ttsProvider="amazon",
        )

        response = test_client.get("/webhooks/voice/incoming?sessionToken=tok_abc")

        assert response.status_code == 200
        assert 'url="wss://testserver/ws?sessionToken=tok_abc"' in response.text
        assert 'voice="Polly.Matthew-Neural"' in response.text
        assert 'welcomeGreeting="Hi &lt;there&gt; &amp; welcome"' in response.text

    def test_incoming_call_unknown_token_uses_defaults(self, test_client):
        """Test TwiML for an unknown token falls back to defaults."""
        response = test_client.post("/webhooks/voice/incoming?sessionToken=missing")

        assert response.status_code == 200
        assert 'voice="Polly.Joanna-Neural"' in response.text
