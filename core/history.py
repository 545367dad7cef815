from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Tuple

from core.drawables import Drawable, ImageDrawable
from core.scene import MUTATION_EVENTS, Scene
from core.snapshot import Snapshot, SnapshotError
from core.state import HISTORY_LIMIT

if TYPE_CHECKING:
    from core.session import EditorSession

logger = logging.getLogger(__name__)


class HistoryManager:
    """
    Snapshot-based undo.

    A snapshot is captured after every mutation, so the top of the buffer
    always mirrors the current scene. `undo()` drops that entry and
    restores the one beneath it.

    Undoing the last entry re-applies it and leaves the buffer empty. That
    entry is kept as the floor: the next save records it again underneath
    the new state, so the first edit after draining the buffer can still
    be undone. Every undo on a non-empty buffer still removes exactly one
    entry.
    """
    def __init__(self, session: "EditorSession", limit: int = HISTORY_LIMIT):
        self._session = session
        self._entries: List[Snapshot] = []
        self._floor: Optional[Snapshot] = None
        self.limit = max(1, int(limit))
        self.is_restoring = False

    def __len__(self) -> int:
        return len(self._entries)

    @property
    def entries(self) -> Tuple[Snapshot, ...]:
        return tuple(self._entries)

    def can_undo(self) -> bool:
        return bool(self._entries)

    def attach(self, scene: Scene) -> None:
        for event in MUTATION_EVENTS:
            scene.on(event, self._on_scene_mutated)

    def _on_scene_mutated(self, _event: str, _obj: Optional[Drawable]) -> None:
        self.save_state()

    def reset(self) -> None:
        self._entries.clear()
        self._floor = None

    def save_state(self) -> bool:
        if self.is_restoring:
            return False
        try:
            snapshot = self._session.scene.serialize(primary=self._session.current_image)
        except (SnapshotError, ValueError, OSError):
            logger.warning("could not capture scene snapshot", exc_info=True)
            return False
        if not self._entries and self._floor is not None:
            self._entries.append(self._floor)
        self._floor = None
        self._entries.append(snapshot)
        if len(self._entries) > self.limit:
            self._entries.pop(0)
        return True

    def undo(self) -> bool:
        if not self._entries:
            return False

        popped = self._entries.pop()
        # With a single entry there is nothing older; re-apply it.
        target = self._entries[-1] if self._entries else popped

        self.is_restoring = True
        try:
            self._session.scene.restore(target, on_complete=self._finish_restore)
        except (SnapshotError, ValueError, OSError):
            logger.warning("could not restore scene snapshot", exc_info=True)
            self._entries.append(popped)
            self.is_restoring = False
            return False
        if not self._entries:
            self._floor = popped
        return True

    def _finish_restore(self, primary: Optional[Drawable]) -> None:
        try:
            self._session.current_image = primary if isinstance(primary, ImageDrawable) else None
            self._session.scene.render()
        finally:
            self.is_restoring = False
