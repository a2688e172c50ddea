"""
Streaming batch reader for delimited mandate files.
"""

from collections import deque
from pathlib import Path
from typing import Iterator

from mandate_sync.core.errors import HeaderMismatchError, MalformedEncoding, ParseError
from mandate_sync.core.models import MandateRecord
from mandate_sync.observability.logger import get_logger

from .record_parser import MandateRecordParser

logger = get_logger(__name__)

FILE_ENCODING = "utf-8"


class MandateFileReader:
    """
    Reads a mandate file in fixed-size batches of parsed records.

    Forward-only and non-restartable: only the current batch is held in
    memory. Malformed lines are logged, counted and skipped.

    Usage:
        with MandateFileReader(path) as reader:
            for batch in reader.iter_batches(200):
                ...
    """

    def __init__(
        self,
        file_path: str | Path,
        delimiter: str = "|",
        max_error_samples: int = 20,
    ):
        """
        Initialize file reader.

        Args:
            file_path: Path to the delimited file
            delimiter: Single-character field separator
            max_error_samples: Number of recent ParseErrors to keep for reporting
        """
        self.file_path = Path(file_path)
        self.parser = MandateRecordParser(delimiter)
        self.line_number = 0
        self.parse_errors = 0
        self.blank_lines = 0
        self.header: list[str] | None = None
        self.error_samples: deque[ParseError] = deque(maxlen=max_error_samples)
        self._handle = None
        self._exhausted = False

    @property
    def file_name(self) -> str:
        return self.file_path.name

    def open(self) -> None:
        """
        Open the file and validate its header.

        Raises:
            FileNotFoundError: If the file does not exist
            HeaderMismatchError: If the header is not valid UTF-8 or does not
                match the field layout
        """
        if self._handle is not None or self._exhausted:
            return

        # Binary mode: lines split on \n only and are decoded one at a time
        self._handle = open(self.file_path, "rb")
        raw_header = self._handle.readline()
        if not raw_header:
            self._exhausted = True
            logger.warning(f"File is empty: {self.file_path}")
            return

        self.line_number = 1
        try:
            header_line = self._decode(raw_header)
        except MalformedEncoding as e:
            self.close()
            raise HeaderMismatchError(
                f"Header is not readable: {e.message}",
                expected=self.parser.column_names,
                actual=[],
            ) from e
        try:
            self.header = self.parser.check_header(header_line)
        except HeaderMismatchError:
            self.close()
            raise
        logger.info(f"Read {len(self.header)} columns from header of {self.file_name}")

    def close(self) -> None:
        """Close the file. A closed reader yields no further batches."""
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        self._exhausted = True

    def next_batch(self, size: int) -> list[MandateRecord]:
        """
        Read up to `size` successfully parsed records.

        Malformed lines do not count towards the batch size. An empty list
        means the file is exhausted.

        Args:
            size: Maximum number of records to return

        Returns:
            List of MandateRecord
        """
        if size < 1:
            raise ValueError(f"batch size must be positive, got {size}")
        if self._handle is None and not self._exhausted:
            self.open()

        batch: list[MandateRecord] = []
        while len(batch) < size and not self._exhausted:
            raw = self._handle.readline()
            if not raw:
                self._exhausted = True
                break

            self.line_number += 1
            if not raw.strip():
                self.blank_lines += 1
                continue

            try:
                line = self._decode(raw)
                batch.append(self.parser.parse_line(line, self.line_number))
            except ParseError as e:
                self.parse_errors += 1
                self.error_samples.append(e)
                logger.warning(
                    f"Skipping malformed line {self.line_number} of {self.file_name}: {e.message}",
                    extra={"line_number": self.line_number, "error_type": type(e).__name__},
                )

        return batch

    def _decode(self, raw: bytes) -> str:
        try:
            return raw.decode(FILE_ENCODING)
        except UnicodeDecodeError as e:
            raise MalformedEncoding(FILE_ENCODING, e.start, e.reason, self.line_number) from e

    def iter_batches(self, size: int) -> Iterator[list[MandateRecord]]:
        """Yield non-empty batches until the file is exhausted."""
        while True:
            batch = self.next_batch(size)
            if not batch:
                return
            yield batch

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
