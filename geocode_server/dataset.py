import csv
import io
import math
import os
import time
from dataclasses import dataclass, fields
from typing import Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from absl import logging

DEFAULT_DATASET_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'data', 'cities.csv')

FIELD_NAMES = ('lat', 'lon', 'name', 'admin1', 'admin2', 'admin3')

Coordinate = Tuple[float, float]
Row = Union[Sequence, Mapping]


class DataFormatError(ValueError):
    """
    Raised when a source row cannot be turned into a Record.

    `row_number` is the 1-based position of the row in the source. For CSV
    files it is the line number in the file and `source` names the file.
    """

    def __init__(self, row_number: int, row, reason: str, source: Optional[str] = None):
        where = f"row {row_number} of {source}" if source else f"row {row_number}"
        super().__init__(f"Malformed {where}: {reason} (row={row!r})")
        self.row_number = row_number
        self.row = row
        self.reason = reason
        self.source = source


@dataclass(frozen=True)
class Record:
    lat: float
    lon: float
    name: str
    admin1: str
    admin2: str
    admin3: str

    def to_dict(self) -> dict:
        # Keep declaration order so serialized records read lat, lon, name, ...
        return {f.name: getattr(self, f.name) for f in fields(self)}


class Dataset:
    """
    An immutable, ordered collection of (coordinate, Record) pairs.

    The coordinate of each entry is the (latitude, longitude) tuple of its
    record. Entries are kept in the order of the source they were loaded from.
    """

    def __init__(self, entries: Iterable[Tuple[Coordinate, Record]] = ()):
        self._entries = tuple(entries)

    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[Tuple[Coordinate, Record]]:
        return iter(self._entries)

    def __getitem__(self, index):
        return self._entries[index]

    def __repr__(self):
        return f"Dataset({len(self._entries)} records)"

    def coordinates(self) -> List[Coordinate]:
        return [coord for coord, _ in self._entries]

    def records(self) -> List[Record]:
        return [record for _, record in self._entries]


def _parse_float(value, field_name, row_number, row):
    if value is None or isinstance(value, bool):
        raise DataFormatError(row_number, row, f"{field_name} is missing")
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        raise DataFormatError(row_number, row, f"{field_name} is not a number: {value!r}")
    if not math.isfinite(parsed):
        raise DataFormatError(row_number, row, f"{field_name} is not finite: {value!r}")
    return parsed


def _parse_text(value, field_name, row_number, row):
    if not isinstance(value, str):
        raise DataFormatError(row_number, row, f"{field_name} must be text, got {value!r}")
    return value


def _row_values(row, row_number):
    if isinstance(row, Mapping):
        missing = [name for name in FIELD_NAMES if name not in row]
        if missing:
            raise DataFormatError(row_number, row, f"missing fields {', '.join(missing)}")
        return [row[name] for name in FIELD_NAMES]
    if isinstance(row, (str, bytes)) or not isinstance(row, Sequence):
        raise DataFormatError(row_number, row, "row is not a sequence of fields")
    if len(row) != len(FIELD_NAMES):
        raise DataFormatError(row_number, row, f"expected {len(FIELD_NAMES)} fields, got {len(row)}")
    return list(row)


def parse_row(row: Row, row_number: int) -> Record:
    """
    Converts one source row into a Record.

    Args:
        row: A sequence of six fields or a mapping keyed by FIELD_NAMES.
        row_number: The 1-based position of the row, used in error messages.

    Returns:
        The parsed Record.

    Raises:
        DataFormatError: If the row has the wrong shape or a field fails to parse.
    """
    lat, lon, name, admin1, admin2, admin3 = _row_values(row, row_number)
    return Record(
        lat=_parse_float(lat, 'lat', row_number, row),
        lon=_parse_float(lon, 'lon', row_number, row),
        name=_parse_text(name, 'name', row_number, row),
        admin1=_parse_text(admin1, 'admin1', row_number, row),
        admin2=_parse_text(admin2, 'admin2', row_number, row),
        admin3=_parse_text(admin3, 'admin3', row_number, row),
    )


def _load_numbered(numbered_rows: Iterable[Tuple[int, Row]]) -> Dataset:
    entries = []
    for row_number, row in numbered_rows:
        record = parse_row(row, row_number)
        entries.append(((record.lat, record.lon), record))
    return Dataset(entries)


def load(source: Iterable[Row]) -> Dataset:
    """
    Builds a Dataset from an iterable of rows.

    The whole load fails on the first malformed row; a partially loaded
    dataset is never returned.

    Args:
        source: Rows of (lat, lon, name, admin1, admin2, admin3), either as
            sequences or as mappings with those keys.

    Returns:
        A Dataset whose order matches the order of the source.
    """
    return _load_numbered(enumerate(source, start=1))


def _decode(raw: bytes, encoding: str, path: str) -> str:
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        line = raw.count(b'\n', 0, e.start) + 1
        raise DataFormatError(line, None, f"not valid {encoding} text: {e.reason}", source=path) from e


def _csv_rows(text: str, path: str) -> Iterator[Tuple[int, List[str]]]:
    """
    Yields (line number, row) for every data row of a CSV document.

    The first non-empty row is the header. Blank lines are skipped, as
    `csv.DictReader` does.
    """
    reader = csv.reader(io.StringIO(text, newline=''))
    header_seen = False
    try:
        for row in reader:
            if not row:
                continue
            if not header_seen:
                header_seen = True
                continue
            yield reader.line_num, row
    except csv.Error as e:
        raise DataFormatError(reader.line_num, None, str(e), source=path) from e


def load_csv(path: str, encoding: str = 'utf-8') -> Dataset:
    """
    Loads a Dataset from a CSV file with a header line.

    Args:
        path: The path to the CSV file. Columns must be in the order
            lat, lon, name, admin1, admin2, admin3.
        encoding: The text encoding of the file.

    Returns:
        The loaded Dataset.

    Raises:
        DataFormatError: If the file is not valid text in `encoding`, is not
            valid CSV, or has a malformed row. `row_number` is the file line.
    """
    start = time.perf_counter()
    with open(path, 'rb') as f:
        raw = f.read()
    text = _decode(raw, encoding, path)
    try:
        dataset = _load_numbered(_csv_rows(text, path))
    except DataFormatError as e:
        if e.source is not None:
            raise
        raise DataFormatError(e.row_number, e.row, e.reason, source=path) from None
    elapsed = time.perf_counter() - start
    logging.info(f"{elapsed:.3f} seconds to load {len(dataset)} records from {path}")
    return dataset
