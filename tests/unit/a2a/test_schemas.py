"""Unit tests for the conversation data shapes."""

from datetime import datetime, timezone

from agentdesk.a2a import AgentEndpoint, Artifact, ArtifactPart, ChatRecord, FileAttachment, Sender, TaskState


class TestChatRecord:
    """Test the chat record document."""

    def test_agent_record_to_dict(self):
        """Test a final agent record with state and artifacts."""
        record = ChatRecord(
            id="task-1",
            sender=Sender.AGENT,
            content="hi",
            state=TaskState.INPUT_REQUIRED,
            artifacts=[Artifact(name="result", parts=[ArtifactPart(kind="text", text="hi")])],
            timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
            raw_exchange={"result": {}},
        )

        assert record.to_dict() == {
            "id": "task-1",
            "sender": "agent",
            "content": "hi",
            "timestamp": "2024-01-02T03:04:05+00:00",
            "state": "input-required",
            "artifacts": [{"name": "result", "parts": [{"kind": "text", "text": "hi"}]}],
            "rawExchange": {"result": {}},
        }

    def test_pending_and_file_flags(self):
        """Test the placeholder flag and the attachment metadata; file bytes are left out."""
        record = ChatRecord(
            id="loading-1",
            sender=Sender.USER,
            content="...",
            pending=True,
            file=FileAttachment(name="a.txt", base64_content="YQ==", mime_type="text/plain"),
        )

        data = record.to_dict()
        assert data["pending"] is True
        assert data["file"] == {"name": "a.txt", "mimeType": "text/plain"}
        assert "state" not in data
        assert "error" not in data


class TestAgentEndpoint:
    """Test endpoint edits."""

    def test_refresh_keeps_id(self):
        """Test only the given fields change."""
        endpoint = AgentEndpoint(id="a", url="http://first.test", name="First")

        endpoint.refresh(url="http://second.test", card={"name": "Second"})

        assert endpoint.id == "a"
        assert endpoint.url == "http://second.test"
        assert endpoint.name == "First"
        assert not endpoint.streaming
        assert endpoint.card == {"name": "Second"}
