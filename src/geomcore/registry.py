# Copyright 2024 GeomCore Contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Definition registry backed by a directory of Grasshopper files.

The registry scans a directory for ``.gh`` and ``.ghx`` files, keeps exactly
one file per base name (binary ``.gh`` wins over XML ``.ghx``), and hashes each
chosen file so its id changes whenever the content does.
"""

import asyncio
import hashlib
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from .models import Definition

logger = logging.getLogger(__name__)

__all__ = [
    "DefinitionRegistry",
    "file_md5",
    "load_definition",
    "read_definition_bytes",
    "DEFINITION_EXTENSIONS",
]

# Order matters: earlier extensions win when a base name has several files.
DEFINITION_EXTENSIONS = (".gh", ".ghx")


def file_md5(path: str, chunk_size: int = 1 << 16) -> str:
    """MD5 hex digest of a file's content."""
    digest = hashlib.md5()
    with open(path, "rb") as fh:
        for chunk in iter(lambda: fh.read(chunk_size), b""):
            digest.update(chunk)
    return digest.hexdigest()


def load_definition(name: str, path: str) -> Definition:
    """Stat and hash one file into a registry record."""
    stat_result = os.stat(path)
    return Definition(
        name=name,
        id=file_md5(path),
        path=path,
        mtime_ns=stat_result.st_mtime_ns,
        size=stat_result.st_size,
    )


async def read_definition_bytes(definition: Definition) -> bytes:
    """Read a definition file from disk, off the event loop."""
    return await asyncio.to_thread(Path(definition.path).read_bytes)


class DefinitionRegistry:
    """
    In-memory list of definitions with lazy re-scan.

    The list is populated by ``refresh()``. Callers that find it empty (the
    directory was deployed after startup, or someone cleared it) go through
    ``definitions()`` which re-scans once before answering.
    """

    def __init__(self, directory: str, extensions: Sequence[str] = DEFINITION_EXTENSIONS):
        self.directory = directory
        self.extensions = tuple(ext.lower() for ext in extensions)
        self._definitions: List[Definition] = []

    def scan(self) -> List[Definition]:
        """Walk the directory and build a fresh definition list. Missing directory -> []."""
        if not os.path.isdir(self.directory):
            logger.error("Definitions directory not found at: %s", self.directory)
            return []

        by_base = {}
        for entry in sorted(os.listdir(self.directory)):
            base, ext = os.path.splitext(entry)
            ext = ext.lower()
            if ext not in self.extensions:
                continue
            full_path = os.path.join(self.directory, entry)
            if not os.path.isfile(full_path):
                continue
            current = by_base.get(base)
            if current is None or self.extensions.index(ext) < self.extensions.index(current[0]):
                by_base[base] = (ext, entry)

        definitions = []
        for base in sorted(by_base):
            _, file_name = by_base[base]
            full_path = os.path.join(self.directory, file_name)
            try:
                definitions.append(load_definition(file_name, full_path))
            except OSError as e:
                logger.warning("Skipping unreadable definition %s: %s", full_path, e)

        logger.info("Registered %d definitions from %s", len(definitions), self.directory)
        logger.debug("Registered definitions: %s", [d.name for d in definitions])
        return definitions

    def refresh(self) -> List[Definition]:
        self._definitions = self.scan()
        return list(self._definitions)

    def clear(self) -> None:
        self._definitions = []

    def is_empty(self) -> bool:
        return not self._definitions

    def definitions(self) -> List[Definition]:
        """Current definitions, re-scanning the directory first if the list is empty."""
        if self.is_empty():
            logger.info("Definitions list empty. Re-scanning %s", self.directory)
            self.refresh()
        return list(self._definitions)

    def lookup_by_name(self, name: str) -> Optional[Definition]:
        return self._find(self.definitions(), lambda d: d.name == name)

    def lookup_by_id(self, definition_id: str) -> Optional[Definition]:
        return self._find(self.definitions(), lambda d: d.id == definition_id)

    def lookup_by_path(self, path: str) -> Optional[Definition]:
        target = os.path.realpath(path)
        return self._find(self.definitions(), lambda d: os.path.realpath(d.path) == target)

    def register_path(self, path: str) -> Optional[Definition]:
        """
        Register a single file that lives inside the definitions directory.

        Returns the existing record if the path is already known and ``None``
        for anything outside the directory or with an unknown extension.
        """
        existing = self.lookup_by_path(path)
        if existing is not None:
            return existing

        root = os.path.realpath(self.directory)
        real = os.path.realpath(path)
        if os.path.commonpath([root, real]) != root or not os.path.isfile(real):
            return None
        if os.path.splitext(real)[1].lower() not in self.extensions:
            return None

        definition = load_definition(os.path.basename(real), real)
        self._definitions.append(definition)
        return definition

    def revalidate(self, definition: Definition) -> Definition:
        """
        Return the current record for ``definition``, rehashing if the file changed.

        A stat mismatch (mtime or size) triggers a rehash. When the content
        hash differs, the registry entry is replaced by a fresh record with a
        new id and no memoized describe result. A file that cannot be stat'ed
        is returned as is; the caller's read reports the failure.
        """
        try:
            stat_result = os.stat(definition.path)
        except OSError:
            return definition
        if definition.stat_matches(stat_result):
            return definition

        try:
            current = load_definition(definition.name, definition.path)
        except OSError as e:
            logger.warning("Could not rehash %s: %s", definition.path, e)
            return definition

        if current.id == definition.id:
            # touched but not changed; keep the memoized info
            definition.mtime_ns = current.mtime_ns
            definition.size = current.size
            return definition

        logger.info("Definition %s changed on disk (id %s -> %s)", definition.name, definition.id, current.id)
        self._definitions = [current if d is definition else d for d in self._definitions]
        return current

    @staticmethod
    def _find(definitions: Iterable[Definition], predicate) -> Optional[Definition]:
        for definition in definitions:
            if predicate(definition):
                return definition
        return None
