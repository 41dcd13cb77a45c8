"""Filesystem collaborator for asset checks."""

from __future__ import annotations

from pathlib import Path


class FilesystemAssets:
    """Resolves asset source refs as paths relative to a project root.

    Args:
        root: Project root that source refs are relative to
        assets_dir: Directory (relative to root) holding asset files, used for orphan detection
    """

    def __init__(self, root: Path, assets_dir: str | Path | None = "assets"):
        self.root = Path(root).resolve()
        self.assets_dir = (self.root / assets_dir) if assets_dir is not None else None

    def _resolve(self, source_ref: str) -> Path | None:
        if not source_ref:
            return None
        path = (self.root / source_ref).resolve()
        if not path.is_relative_to(self.root):
            return None
        return path

    def exists(self, source_ref: str) -> bool:
        path = self._resolve(source_ref)
        return path is not None and path.is_file()

    __call__ = exists

    def asset_refs(self) -> list[str]:
        """All files under the assets directory, as root-relative posix refs."""
        if self.assets_dir is None or not self.assets_dir.is_dir():
            return []
        return sorted(
            p.relative_to(self.root).as_posix()
            for p in self.assets_dir.rglob("*")
            if p.is_file() and not p.name.startswith(".")
        )
