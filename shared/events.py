from enum import Enum
from dataclasses import dataclass
from datetime import datetime
import json


class EventType(str, Enum):
    # Team lifecycle
    TEAM_CREATED = "team.created"
    TEAM_UPDATED = "team.updated"
    TEAM_DELETED = "team.deleted"

    # Hackathon role assignments
    ROLE_ASSIGNED = "hackathon_role.assigned"
    ROLE_REMOVED = "hackathon_role.removed"

    # Hackathon lifecycle
    HACKATHON_CREATED = "hackathon.created"
    HACKATHON_UPDATED = "hackathon.updated"

    @property
    def topic(self) -> str:
        return self.value.split(".", 1)[0]

    @property
    def action(self) -> str:
        return self.value.split(".", 1)[1]


TOPIC_CHANNELS = {
    "team": "teams",
    "hackathon_role": "roles",
    "hackathon": "hackathons",
}


def organization_channel(organization_id, topic: str) -> str:
    return f"org:{organization_id}:{TOPIC_CHANNELS.get(topic, topic)}"


def organization_channels(organization_id) -> list:
    return [organization_channel(organization_id, topic) for topic in TOPIC_CHANNELS]


@dataclass
class Event:
    type: EventType
    organization_id: str
    timestamp: str = None
    data: dict = None

    def __post_init__(self):
        self.organization_id = str(self.organization_id)
        if self.timestamp is None:
            self.timestamp = datetime.utcnow().isoformat() + "Z"
        if self.data is None:
            self.data = {}

    @property
    def channel(self) -> str:
        return organization_channel(self.organization_id, EventType(self.type).topic)

    def to_dict(self) -> dict:
        event_type = EventType(self.type)
        return {
            "type": event_type.value,
            "event_type": event_type.action,
            "organization_id": self.organization_id,
            "timestamp": self.timestamp,
            "data": self.data
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> "Event":
        return cls(
            type=EventType(data["type"]),
            organization_id=data["organization_id"],
            timestamp=data.get("timestamp"),
            data=data.get("data", {})
        )

    @classmethod
    def from_json(cls, json_str: str) -> "Event":
        return cls.from_dict(json.loads(json_str))
