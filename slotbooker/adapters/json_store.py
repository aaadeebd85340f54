"""
JSON file backed store used by the command line host.
"""

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from ..domain.exceptions import StoreError
from ..domain.models import Appointment, Provider, Requester
from .memory_store import InMemoryStore

logger = logging.getLogger(__name__)


class JsonFileStore(InMemoryStore):
    """
    An ``InMemoryStore`` that rewrites a JSON document after every save.

    File layout:
    {
        "providers": [
            {
                "id": "dr-lee",
                "name": "Dr. Lee",
                "windows": [
                    {
                        "day_of_week": "MONDAY",
                        "start_time": "09:00",
                        "end_time": "12:00",
                        "booked_intervals": [
                            {"start_time": "09:00", "end_time": "10:00", "appointment_id": "..."}
                        ]
                    }
                ]
            }
        ],
        "requesters": [{"id": "pat-1", "name": "Sam", "email": "sam@example.com"}],
        "appointments": [...]
    }
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._loading = True
        super().__init__()
        self._load()
        self._loading = False

    def _load(self) -> None:
        if not self.path.exists():
            logger.info("Data file %s does not exist yet, starting empty", self.path)
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f) or {}
        except (OSError, json.JSONDecodeError) as exc:
            raise StoreError(f"Could not read data file {self.path}: {exc}") from exc

        try:
            for item in data.get("providers", []):
                provider = Provider.from_dict(item)
                self.providers[provider.id] = provider
            for item in data.get("requesters", []):
                requester = Requester.from_dict(item)
                self.requesters[requester.id] = requester
            for item in data.get("appointments", []):
                appointment = Appointment.from_dict(item)
                self.appointments[appointment.id] = appointment
        except (KeyError, TypeError, ValueError) as exc:
            raise StoreError(f"Invalid document in {self.path}: {exc}") from exc

    def to_document(self) -> Dict[str, Any]:
        return {
            "providers": [provider.to_dict() for provider in self.providers.values()],
            "requesters": [requester.to_dict() for requester in self.requesters.values()],
            "appointments": [
                appointment.to_dict()
                for appointment in sorted(self.appointments.values(), key=lambda a: a.sort_key())
            ],
        }

    def _persist(self) -> None:
        if self._loading:
            return

        # Write to a sibling file first so a crash never leaves half a document
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(self.to_document(), f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as exc:
            raise StoreError(f"Could not write data file {self.path}: {exc}") from exc
