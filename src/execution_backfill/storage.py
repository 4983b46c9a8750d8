"""On-disk page artifacts and the run error log."""

import gzip
import logging
import os
from pathlib import Path
from typing import Optional, TextIO, Union

from .errors import PersistenceError

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".json.gz"
TEMP_SUFFIX = ".tmp"


class PageStore:
    """
    Gzip artifacts laid out as ``{results_dir}/{product}/{page_id}.json.gz``.

    The existence of an artifact is the only resumability checkpoint, so
    writes go to a temporary sibling and are renamed into place once the
    gzip stream is closed.
    """

    def __init__(self, results_dir: Union[str, Path], product: str):
        self.root = Path(results_dir) / product
        self.product = product

    def ensure_directory(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def path_for(self, page_id: int) -> Path:
        return self.root / f"{page_id}{ARTIFACT_SUFFIX}"

    def exists(self, page_id: int) -> bool:
        return self.path_for(page_id).exists()

    def save(self, page_id: int, body: Optional[bytes]) -> Path:
        """
        Write ``body`` as a gzip artifact.

        ``None`` leaves an empty placeholder file so the page still counts as
        done. Blocking; run it in an executor from async code.

        Raises:
            PersistenceError: If the file cannot be written
        """
        final_path = self.path_for(page_id)
        temp_path = final_path.with_name(final_path.name + TEMP_SUFFIX)

        try:
            if body is None:
                temp_path.touch()
            else:
                with open(temp_path, "wb") as raw, gzip.GzipFile(fileobj=raw, mode="wb") as gz:
                    gz.write(body)
            os.replace(temp_path, final_path)
        except OSError as e:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            except OSError as cleanup_error:
                logger.warning(f"Could not remove {temp_path}: {cleanup_error}")
            raise PersistenceError(f"failed to save page {page_id}: {e}") from e

        return final_path

    def load(self, page_id: int) -> bytes:
        """Return the decompressed body of a saved page (empty for placeholders)."""
        path = self.path_for(page_id)
        if path.stat().st_size == 0:
            return b""
        with gzip.open(path, "rb") as f:
            return f.read()


class ErrorLog:
    """
    Append-only ``{page_id}: {error}`` lines for failed pages.

    The ``.json`` file name is historical; the content is plain text, one
    line per failure.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._file: Optional[TextIO] = None
        self.lines_written = 0

    @classmethod
    def for_product(cls, directory: Union[str, Path], product: str,
                    suffix: str = "_result_err.json") -> "ErrorLog":
        return cls(Path(directory) / f"{product}{suffix}")

    def open(self) -> "ErrorLog":
        if self._file is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file = open(self.path, "a", encoding="utf-8")
        return self

    def record(self, page_id: int, error: BaseException) -> None:
        # One short line per failed page; written on the loop, unlike page saves.
        if self._file is None:
            self.open()
        self._file.write(f"{page_id}: {error}\n")
        self._file.flush()
        self.lines_written += 1

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
