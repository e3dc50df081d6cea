"""Persisted catalog of code workspaces (``workspaces.json``)."""

from __future__ import annotations

import threading
from pathlib import Path

from lumen.errors import NotFound
from lumen.store.jsonio import read_json, write_json
from lumen.store.models import Workspace, utc_now


class WorkspaceStore:
    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()
        self._workspaces: list[Workspace] = []

    def load(self) -> None:
        raw = read_json(self.path, default=[])
        try:
            loaded = [Workspace.from_dict(w) for w in raw]
        except (KeyError, TypeError, ValueError):
            loaded = []
        with self._lock:
            self._workspaces = loaded

    def save(self) -> None:
        with self._lock:
            write_json(self.path, [w.to_dict() for w in self._workspaces])

    @property
    def workspaces(self) -> list[Workspace]:
        return list(self._workspaces)

    def get(self, workspace_id: str) -> Workspace:
        """Return the workspace with *workspace_id* (or a unique name / id prefix).

        Raises:
            NotFound: No workspace, or more than one, matches.
        """
        exact = [w for w in self._workspaces if w.id == workspace_id]
        if exact:
            return exact[0]
        matches = [
            w for w in self._workspaces if w.name == workspace_id or w.id.startswith(workspace_id)
        ]
        if len(matches) != 1:
            raise NotFound(f"No unique workspace matches '{workspace_id}'")
        return matches[0]

    def add(
        self,
        root: Path,
        name: str | None = None,
        languages: list[str] | None = None,
        ignore_patterns: list[str] | None = None,
    ) -> Workspace:
        """Register *root*; an already registered root is returned unchanged."""
        resolved = str(Path(root).resolve())
        with self._lock:
            existing = next((w for w in self._workspaces if w.root == resolved), None)
            if existing is not None:
                return existing
            workspace = Workspace(name=name or Path(resolved).name, root=resolved)
            if languages:
                workspace.languages = [x.lower().lstrip(".") for x in languages]
            if ignore_patterns is not None:
                workspace.ignore_patterns = list(ignore_patterns)
            self._workspaces.append(workspace)
            self.save()
        return workspace

    def update(self, workspace: Workspace) -> Workspace:
        with self._lock:
            for i, w in enumerate(self._workspaces):
                if w.id == workspace.id:
                    workspace.updated_at = utc_now()
                    self._workspaces[i] = workspace
                    self.save()
                    return workspace
        raise NotFound(f"Unknown workspace '{workspace.id}'")

    def remove(self, workspace_id: str) -> Workspace:
        with self._lock:
            workspace = self.get(workspace_id)
            self._workspaces = [w for w in self._workspaces if w.id != workspace.id]
            self.save()
        return workspace

    def toggle_watch(self, workspace_id: str) -> Workspace:
        with self._lock:
            workspace = self.get(workspace_id)
            workspace.is_watching = not workspace.is_watching
            return self.update(workspace)
