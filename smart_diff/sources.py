"""File sources for the two sides of a comparison.

The diff engine only ever sees byte buffers. This module produces them:

* :class:`LocalFileSource` reads the working copy from disk.
* :class:`GitFileSource` reads files as of a git reference by shelling out
  to ``git`` (``git ls-tree``, ``git cat-file``), following symbolic links
  inside the committed tree.

It also knows the SMART project layout: a project is a directory holding
``project.xml``; rooms live in ``Export/Rooms/<name>.xml`` and tilesets under
``Export/Tileset/{CRE,SCE}/<nn>/``.

All paths handed to a source are POSIX paths relative to the repository root.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Dict, List, NamedTuple, Optional, Protocol, Tuple

from pyrsistent import PMap, pmap

from smart_diff.errors import SourceNotFound

logger = logging.getLogger(__name__)

PROJECT_FILE = "project.xml"
ROOMS_DIR = "Export/Rooms"
TILESET_DIR = "Export/Tileset"

TREE_MODE = "040000"
SYMLINK_MODE = "120000"
SYMLINK_LIMIT = 40


class FileSource(Protocol):
    name: str

    def load(self, path: str) -> bytes:
        """Return file content; raise ``SourceNotFound`` if absent."""
        ...

    def list(self, prefix: str) -> List[str]:
        """Return all file paths under directory ``prefix``."""
        ...


class LocalFileSource:
    """The working copy on disk."""

    def __init__(self, root: Path | str = "."):
        self.root = Path(root)
        self.name = "working copy"

    def load(self, path: str) -> bytes:
        try:
            return (self.root / path).read_bytes()
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError):
            raise SourceNotFound(path, self.name) from None

    def list(self, prefix: str) -> List[str]:
        base = self.root / prefix
        if not base.is_dir():
            return []
        paths: List[str] = []
        # Shared tileset directories are often symlinked into a project
        for dirpath, _, filenames in os.walk(base, followlinks=True):
            directory = Path(dirpath)
            for filename in filenames:
                if (directory / filename).is_file():
                    relative = directory.relative_to(self.root) / filename
                    paths.append(relative.as_posix())
        return sorted(paths)


class _TreeEntry(NamedTuple):
    mode: str
    kind: str
    oid: str


class GitFileSource:
    """Files as of a git reference (branch, tag, commit).

    Paths are resolved by walking the tree one component at a time so that
    symbolic links (mode ``120000``) are followed like the filesystem
    would; SMART projects commonly share ``Export/Tileset`` this way.
    """

    def __init__(self, repo: Path | str, reference: str = "HEAD"):
        self.repo = Path(repo)
        self.reference = reference
        self.name = reference
        self._root: Optional[_TreeEntry] = None
        self._trees: Dict[str, Dict[str, _TreeEntry]] = {}

    def _git(self, *args: str) -> subprocess.CompletedProcess:
        return subprocess.run(
            ["git", "-C", str(self.repo), *args],
            capture_output=True,
            check=False,
        )

    def _root_tree(self, path: str) -> _TreeEntry:
        if self._root is None:
            result = self._git("rev-parse", "--verify", f"{self.reference}^{{tree}}")
            if result.returncode != 0:
                logger.debug(
                    "Cannot resolve %s: %s",
                    self.reference,
                    result.stderr.decode(errors="replace").strip(),
                )
                raise SourceNotFound(path, self.name)
            self._root = _TreeEntry(TREE_MODE, "tree", result.stdout.decode().strip())
        return self._root

    def _ls_tree(self, oid: str, recursive: bool = False) -> List[Tuple[str, _TreeEntry]]:
        args = ["ls-tree", "-z"] + (["-r"] if recursive else []) + [oid]
        result = self._git(*args)
        if result.returncode != 0:
            return []
        entries: List[Tuple[str, _TreeEntry]] = []
        for record in result.stdout.split(b"\0"):
            if not record:
                continue
            meta, _, name = record.partition(b"\t")
            mode, kind, entry_oid = meta.decode().split()
            entries.append(
                (name.decode(errors="surrogateescape"), _TreeEntry(mode, kind, entry_oid))
            )
        return entries

    def _children(self, tree: _TreeEntry) -> Dict[str, _TreeEntry]:
        # Trees are content addressed, so the listing never goes stale
        if tree.oid not in self._trees:
            self._trees[tree.oid] = dict(self._ls_tree(tree.oid))
        return self._trees[tree.oid]

    def _blob(self, oid: str) -> bytes:
        return self._git("cat-file", "blob", oid).stdout

    def _resolve(self, path: str) -> _TreeEntry:
        """Tree entry at ``path``, following symbolic links on the way."""
        entry = self._root_tree(path)
        parents: List[_TreeEntry] = []
        names = list(reversed(PurePosixPath(path).parts))
        links = SYMLINK_LIMIT
        while names:
            name = names.pop()
            if name == ".":
                continue
            if name == "..":
                if not parents:
                    raise SourceNotFound(path, self.name)
                entry = parents.pop()
                continue
            if entry.kind != "tree":
                raise SourceNotFound(path, self.name)
            child = self._children(entry).get(name)
            if child is None:
                raise SourceNotFound(path, self.name)
            if child.mode == SYMLINK_MODE:
                if links == 0:
                    logger.warning("Symlink limit reached resolving %s", path)
                    raise SourceNotFound(path, self.name)
                links -= 1
                target = PurePosixPath(self._blob(child.oid).decode(errors="surrogateescape"))
                if target.is_absolute():
                    raise SourceNotFound(path, self.name)
                names.extend(reversed(target.parts))
            else:
                parents.append(entry)
                entry = child
        return entry

    def load(self, path: str) -> bytes:
        entry = self._resolve(path)
        if entry.kind != "blob":
            raise SourceNotFound(path, self.name)
        return self._blob(entry.oid)

    def list(self, prefix: str) -> List[str]:
        return sorted(self._list(prefix, SYMLINK_LIMIT))

    def _list(self, prefix: str, links: int) -> List[str]:
        try:
            tree = self._resolve(prefix)
        except SourceNotFound:
            return []
        if tree.kind != "tree":
            return []
        base = PurePosixPath(prefix)
        paths: List[str] = []
        for name, entry in self._ls_tree(tree.oid, recursive=True):
            path = str(base / name)
            if entry.kind == "commit":
                # Submodule
                continue
            if entry.mode != SYMLINK_MODE:
                paths.append(path)
                continue
            try:
                target = self._resolve(path)
            except SourceNotFound:
                logger.debug("Dangling symlink %s in %s", path, self.name)
                continue
            if target.kind == "blob":
                paths.append(path)
            elif links > 0:
                paths.extend(self._list(path, links - 1))
        return paths


def resolve_reference(repo: Path | str, reference: str) -> str:
    """Check that ``reference`` names a commit in ``repo``.

    Raises:
        ValueError: If git cannot resolve the reference.
    """
    result = subprocess.run(
        ["git", "-C", str(repo), "rev-parse", "--verify", f"{reference}^{{commit}}"],
        capture_output=True,
        check=False,
    )
    if result.returncode != 0:
        raise ValueError(f"Unknown git reference: {reference}")
    return result.stdout.decode().strip()


# --------- Project layout ---------


def find_projects(root: Path | str = ".") -> List[str]:
    """Relative paths of all directories containing ``project.xml``."""
    root = Path(root)
    return sorted(
        p.parent.relative_to(root).as_posix() for p in root.glob(f"**/{PROJECT_FILE}")
    )


def room_path(project: str, room: str) -> str:
    return str(PurePosixPath(project) / ROOMS_DIR / f"{room}.xml")


def room_id(project: str, room: str) -> str:
    """Display name of a room: ``"<project>/<room>"``."""
    return room if project in ("", ".") else f"{project}/{room}"


def list_rooms(source: FileSource, project: str) -> List[str]:
    prefix = str(PurePosixPath(project) / ROOMS_DIR)
    return sorted(
        PurePosixPath(path).stem
        for path in source.list(prefix)
        if path.endswith(".xml") and PurePosixPath(path).parent == PurePosixPath(prefix)
    )


def modified_rooms(
    repo: Path | str, reference: str, projects: List[str]
) -> List[Tuple[str, str]]:
    """Rooms whose working copy differs from ``reference``.

    Returns sorted ``(project, room)`` pairs. Untracked new rooms are included.
    """
    changed = set()
    for args in (
        ["diff", "--name-only", "-z", reference, "--"],
        ["ls-files", "-z", "--others", "--exclude-standard"],
    ):
        result = subprocess.run(
            ["git", "-C", str(repo), *args], capture_output=True, check=False
        )
        if result.returncode != 0:
            raise ValueError(result.stderr.decode(errors="replace").strip())
        changed.update(
            name for name in result.stdout.decode(errors="surrogateescape").split("\0") if name
        )

    rooms: List[Tuple[str, str]] = []
    for project in projects:
        rooms_dir = PurePosixPath(project) / ROOMS_DIR
        for path in changed:
            p = PurePosixPath(path)
            if p.parent == rooms_dir and p.suffix == ".xml":
                rooms.append((project, p.stem))
    return sorted(rooms)


def load_tileset_files(source: FileSource, project: str) -> PMap[str, bytes]:
    """All tileset files of ``project`` keyed relative to ``Export/Tileset``."""
    prefix = PurePosixPath(project) / TILESET_DIR
    files: Dict[str, bytes] = {}
    for path in source.list(str(prefix)):
        files[PurePosixPath(path).relative_to(prefix).as_posix()] = source.load(path)
    return pmap(files)


@dataclass(frozen=True)
class ComparisonInputs:
    """Byte buffers for :func:`smart_diff.session.open_comparison`."""

    room_id: str
    working: Optional[bytes]
    reference: Optional[bytes]
    tileset_working: PMap[str, bytes]
    tileset_reference: PMap[str, bytes]
    reference_name: Optional[str] = None


def _load_optional(source: FileSource, path: str) -> Optional[bytes]:
    try:
        return source.load(path)
    except SourceNotFound:
        logger.info("%s not present in %s", path, source.name)
        return None


def load_comparison_inputs(
    project: str, room: str, working: FileSource, reference: FileSource
) -> ComparisonInputs:
    path = room_path(project, room)
    return ComparisonInputs(
        room_id=room_id(project, room),
        working=_load_optional(working, path),
        reference=_load_optional(reference, path),
        tileset_working=load_tileset_files(working, project),
        tileset_reference=load_tileset_files(reference, project),
        reference_name=reference.name,
    )
