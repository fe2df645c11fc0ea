"""AnkiConnect REST client."""

import logging
from typing import Any, Dict, List, Optional, Protocol

import requests

from sync_engine.config import Config
from ankiconnect_client.exceptions import AnkiConnectionError, AnkiError


class AnkiClientProtocol(Protocol):
    """Protocol for the remote operations the sync engine relies on"""

    def note_types_and_ids(self) -> Dict[str, int]:
        ...

    def multi(self, action: str, params_list: List[Dict]) -> List[Any]:
        ...

    def add_note(self, note: Dict) -> int:
        ...

    def notes_info(self, note_ids: List[int]) -> List[Dict]:
        ...

    def change_deck(self, cards: List[int], deck: str) -> None:
        ...

    def create_deck(self, deck: str) -> int:
        ...

    def update_fields(self, note_id: int, fields: Dict[str, str]) -> None:
        ...

    def add_tags_to_notes(self, note_ids: List[int], tags: List[str]) -> None:
        ...

    def remove_tags_from_notes(self, note_ids: List[int], tags: List[str]) -> None:
        ...

    def delete_notes(self, note_ids: List[int]) -> None:
        ...

    def add_media(self, filename: str, path: str) -> str:
        ...


class AnkiClient:
    """Handles all AnkiConnect operations"""

    def __init__(self, config: Config, logger: logging.Logger):
        self.config = config
        self.logger = logger
        self.session = requests.Session()
        self.headers = {"Content-Type": "application/json"}

    def invoke(self, action: str, params: Optional[Dict] = None) -> Any:
        """Send one AnkiConnect action and return its result"""
        payload = {"action": action, "version": self.config.anki_connect_version}
        if params is not None:
            payload["params"] = params
        try:
            self.logger.debug(f"Invoking AnkiConnect action {action} at {self.config.anki_connect_url}")
            response = self.session.post(
                self.config.anki_connect_url,
                json=payload,
                headers=self.headers,
                timeout=self.config.request_timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Error invoking {action} at {self.config.anki_connect_url}: {str(e)}")
            raise AnkiConnectionError(f"Failed to invoke {action}: {str(e)}", action=action)

        if not isinstance(body, dict) or "result" not in body or "error" not in body:
            raise AnkiConnectionError(f"Unexpected response for {action}: {body!r}", action=action)
        if body["error"] is not None:
            self.logger.debug(f"AnkiConnect {action} returned error: {body['error']}")
            raise AnkiError(str(body["error"]), action=action)
        return body["result"]

    def version(self) -> int:
        return self.invoke("version")

    def note_types_and_ids(self) -> Dict[str, int]:
        return self.invoke("modelNamesAndIds")

    def model_field_names(self, model_name: str) -> List[str]:
        return self.invoke("modelFieldNames", {"modelName": model_name})

    def multi(self, action: str, params_list: List[Dict]) -> List[Any]:
        """Run the same action for every params dict in a single request.

        Each inner result is unwrapped; the first inner error is raised.
        """
        actions = [
            {"action": action, "version": self.config.anki_connect_version, "params": params}
            for params in params_list
        ]
        results = self.invoke("multi", {"actions": actions})
        unwrapped = []
        for item in results:
            if isinstance(item, dict) and set(item.keys()) == {"result", "error"}:
                if item["error"] is not None:
                    raise AnkiError(str(item["error"]), action=action)
                unwrapped.append(item["result"])
            else:
                unwrapped.append(item)
        return unwrapped

    def add_note(self, note: Dict) -> int:
        return self.invoke("addNote", {"note": note})

    def notes_info(self, note_ids: List[int]) -> List[Dict]:
        return self.invoke("notesInfo", {"notes": note_ids})

    def change_deck(self, cards: List[int], deck: str) -> None:
        self.invoke("changeDeck", {"cards": cards, "deck": deck})

    def create_deck(self, deck: str) -> int:
        return self.invoke("createDeck", {"deck": deck})

    def update_fields(self, note_id: int, fields: Dict[str, str]) -> None:
        self.invoke("updateNoteFields", {"note": {"id": note_id, "fields": fields}})

    def add_tags_to_notes(self, note_ids: List[int], tags: List[str]) -> None:
        self.invoke("addTags", {"notes": note_ids, "tags": " ".join(tags)})

    def remove_tags_from_notes(self, note_ids: List[int], tags: List[str]) -> None:
        self.invoke("removeTags", {"notes": note_ids, "tags": " ".join(tags)})

    def delete_notes(self, note_ids: List[int]) -> None:
        self.invoke("deleteNotes", {"notes": note_ids})

    def add_media(self, filename: str, path: str) -> str:
        return self.invoke("storeMediaFile", {"filename": filename, "path": path})
