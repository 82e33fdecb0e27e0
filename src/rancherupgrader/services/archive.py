"""Compose bundle extraction for rancher-upgrader."""

import os
import shutil
import stat
import zipfile
from pathlib import Path
from typing import List, Tuple

from rancherupgrader.errors import ArchiveError

Entry = Tuple[zipfile.ZipInfo, Path]


class ArchiveService:
    """Unpacks a stack's compose bundle into the working directory.

    Every entry is checked before the first byte is written, so a bundle
    with one bad entry leaves the working directory as it was.
    """

    def _inside(self, base: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base), str(candidate)]) == str(base)
        except ValueError:
            return False

    def _plan(self, bundle: zipfile.ZipFile, base: Path) -> List[Entry]:
        plan: List[Entry] = []
        for member in bundle.infolist():
            name = member.filename.replace("\\", "/")
            target = (base / name).resolve()
            if not self._inside(base, target):
                raise ArchiveError(
                    f"Compose bundle entry `{member.filename}` points outside {base}. "
                    "Extraction aborted to prevent path traversal."
                )
            if stat.S_ISLNK(member.external_attr >> 16):
                raise ArchiveError(f"Compose bundle entry `{member.filename}` is a symbolic link.")
            plan.append((member, target))
        return plan

    def safe_extract_zip(self, zip_path: str, destination_dir: str) -> List[str]:
        base = Path(destination_dir).resolve()
        written: List[str] = []

        try:
            with zipfile.ZipFile(zip_path, "r") as bundle:
                for member, target in self._plan(bundle, base):
                    if member.is_dir():
                        target.mkdir(parents=True, exist_ok=True)
                        continue
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with bundle.open(member) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    written.append(str(target))
        except zipfile.BadZipFile as exc:
            raise ArchiveError(f"Invalid ZIP archive: {zip_path}") from exc
        except OSError as exc:
            raise ArchiveError(f"Could not extract {zip_path}: {exc}") from exc

        return written
