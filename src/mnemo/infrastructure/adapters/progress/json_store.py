"""
JSON Progress Repository: Infrastructure adapter for a JSON file on disk.

The whole store is one JSON array of card states. It is read once, kept in
memory, and rewritten atomically (temp file + rename) after every save.
"""

import logging
import os
import tempfile
from pathlib import Path

from pydantic import TypeAdapter, ValidationError

from mnemo.domain.errors import MnemoError
from mnemo.domain.progress.models import CardState
from mnemo.domain.progress.ports import ProgressRepository

logger = logging.getLogger(__name__)

_STATES = TypeAdapter(list[CardState])


class StoreCorruptedError(MnemoError):
    """The progress file exists but does not hold valid card states."""


class JsonProgressRepository(ProgressRepository):
    """
    Stores every card state in a single JSON document.

    Suitable for a single process; concurrent writers from several processes
    are not coordinated.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._states: dict[tuple[str, str], CardState] | None = None

    def _load(self) -> dict[tuple[str, str], CardState]:
        if self._states is not None:
            return self._states

        if not self.path.exists():
            logger.debug(f"No progress file at {self.path}, starting empty")
            self._states = {}
            return self._states

        try:
            states = _STATES.validate_json(self.path.read_bytes())
        except ValidationError as e:
            raise StoreCorruptedError(f"Invalid progress file {self.path}: {e}") from e

        logger.debug(f"Loaded {len(states)} card states from {self.path}")
        self._states = {s.key: s for s in states}
        return self._states

    def _flush(self, states: dict[tuple[str, str], CardState]) -> None:
        """Write ``states`` to disk and make them the cached view once the file is in place."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = _STATES.dump_json(list(states.values()), indent=2)

        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(tmp, self.path)
        except OSError:
            Path(tmp).unlink(missing_ok=True)
            raise
        self._states = states

    async def get(self, user_id: str, flashcard_id: str) -> CardState | None:
        return self._load().get((user_id, flashcard_id))

    async def save(self, state: CardState) -> None:
        self._flush({**self._load(), state.key: state})

    async def list_for_user(self, user_id: str) -> list[CardState]:
        return [s for s in self._load().values() if s.user_id == user_id]
