from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class MessageType(str, Enum):
    PROGRESS = "PROGRESS"
    RUN_STARTED = "RUN_STARTED"
    RUN_COMPLETED = "RUN_COMPLETED"
    EXPERIMENT_COMPLETED = "EXPERIMENT_COMPLETED"
    EXPERIMENT_PAUSED = "EXPERIMENT_PAUSED"
    ERROR = "ERROR"


@dataclass
class Envelope:
    type: MessageType
    experiment_id: int
    payload: dict[str, Any] | None
    timestamp: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "experimentId": self.experiment_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }


class BroadcastTransportContract(ABC):
    @abstractmethod
    def publish(self, topic: str, envelope: Envelope) -> None:
        pass
