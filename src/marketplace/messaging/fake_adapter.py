"""In-memory publisher for development and testing."""

from marketplace.messaging.port import MessagePublisher


class FakePublisher(MessagePublisher):
    """Records every published message; can be told to fail."""

    def __init__(self) -> None:
        self.messages: list[dict] = []
        self.should_fail: bool = False

    def configure(self, should_fail: bool) -> None:
        self.should_fail = should_fail

    def publish(self, topic: str, payload: dict) -> None:
        if self.should_fail:
            raise ConnectionError(f"Message bus unavailable for {topic}")
        self.messages.append({"topic": topic, "payload": payload})

    def topics(self) -> list[str]:
        return [m["topic"] for m in self.messages]
