import csv
import math
import os
import tempfile
import unittest

from geocode_server.dataset import (
    DEFAULT_DATASET_PATH,
    DataFormatError,
    Dataset,
    Record,
    load,
    load_csv,
)


ROWS = [
    ['44.9483', '-93.34801', 'Saint Louis Park', 'Minnesota', 'Hennepin County', 'US'],
    ['44.97997', '-93.26384', 'Minneapolis', 'Minnesota', 'Hennepin County', 'US'],
    ['44.8833', '-93.283', 'Richfield', 'Minnesota', 'Hennepin County', 'US'],
]


class TestLoad(unittest.TestCase):
    def test_load_preserves_order(self):
        dataset = load(ROWS)
        self.assertEqual(len(dataset), 3)
        self.assertEqual([r.name for r in dataset.records()],
                         ['Saint Louis Park', 'Minneapolis', 'Richfield'])

    def test_load_pairs_coordinates_with_records(self):
        dataset = load(ROWS)
        coord, record = dataset[0]
        self.assertEqual(coord, (44.9483, -93.34801))
        self.assertEqual(record, Record(44.9483, -93.34801, 'Saint Louis Park',
                                        'Minnesota', 'Hennepin County', 'US'))
        self.assertEqual(dataset.coordinates()[2], (44.8833, -93.283))

    def test_load_accepts_mappings(self):
        rows = [dict(zip(('lat', 'lon', 'name', 'admin1', 'admin2', 'admin3'), row)) for row in ROWS]
        dataset = load(rows)
        self.assertEqual(dataset.records(), load(ROWS).records())

    def test_load_accepts_numeric_fields(self):
        dataset = load([(1, 2.5, 'A', 'B', 'C', 'D')])
        self.assertEqual(dataset[0][0], (1.0, 2.5))
        self.assertIsInstance(dataset[0][1].lat, float)

    def test_load_empty_source(self):
        dataset = load([])
        self.assertEqual(len(dataset), 0)
        self.assertEqual(list(dataset), [])

    def test_duplicate_rows_are_distinct_entries(self):
        dataset = load([ROWS[0], ROWS[0]])
        self.assertEqual(len(dataset), 2)
        self.assertEqual(dataset[0][1], dataset[1][1])
        self.assertIsNot(dataset[0][1], dataset[1][1])

    def test_records_are_immutable(self):
        record = load(ROWS)[0][1]
        with self.assertRaises(Exception):
            record.name = 'Somewhere else'

    def test_to_dict_keeps_field_order(self):
        record = load(ROWS)[0][1]
        self.assertEqual(list(record.to_dict()), ['lat', 'lon', 'name', 'admin1', 'admin2', 'admin3'])
        self.assertEqual(record.to_dict()['admin2'], 'Hennepin County')

    def test_dataset_is_not_tied_to_input_list(self):
        rows = list(ROWS)
        dataset = load(rows)
        rows.append(['0', '0', 'X', 'Y', 'Z', 'W'])
        self.assertEqual(len(dataset), 3)


class TestLoadErrors(unittest.TestCase):
    def assertMalformed(self, rows, row_number):
        with self.assertRaises(DataFormatError) as ctx:
            load(rows)
        self.assertEqual(ctx.exception.row_number, row_number)
        self.assertIn(f'row {row_number}', str(ctx.exception))
        return ctx.exception

    def test_non_numeric_latitude(self):
        error = self.assertMalformed([ROWS[0], ['north', '1', 'A', 'B', 'C', 'D']], 2)
        self.assertEqual(error.row, ['north', '1', 'A', 'B', 'C', 'D'])

    def test_non_finite_coordinates(self):
        self.assertMalformed([['nan', '1', 'A', 'B', 'C', 'D']], 1)
        self.assertMalformed([ROWS[0], ROWS[1], ['1', 'inf', 'A', 'B', 'C', 'D']], 3)
        self.assertMalformed([[1.0, -math.inf, 'A', 'B', 'C', 'D']], 1)

    def test_missing_text_field(self):
        self.assertMalformed([['1', '2', 'A', None, 'C', 'D']], 1)

    def test_wrong_field_count(self):
        self.assertMalformed([ROWS[0][:5]], 1)
        self.assertMalformed([ROWS[0] + ['extra']], 1)

    def test_mapping_missing_key(self):
        self.assertMalformed([{'lat': '1', 'lon': '2', 'name': 'A'}], 1)

    def test_row_that_is_a_string(self):
        self.assertMalformed(['44.9,-93.3,A,B,C,D'], 1)

    def test_error_is_a_value_error(self):
        with self.assertRaises(ValueError):
            load([['x', 'y', 'A', 'B', 'C', 'D']])


class TestLoadCsv(unittest.TestCase):
    def setUp(self):
        fd, self.test_csv_file = tempfile.mkstemp(suffix='.csv')
        with os.fdopen(fd, 'w', newline='') as f:
            writer = csv.writer(f)
            writer.writerow(['lat', 'lon', 'name', 'admin1', 'admin2', 'admin3'])
            writer.writerows(ROWS)
            writer.writerow(['35.6895', '139.69171', 'Tokyo', 'Tokyo', '', 'JP'])

    def tearDown(self):
        os.remove(self.test_csv_file)

    def test_load_csv_skips_header(self):
        dataset = load_csv(self.test_csv_file)
        self.assertIsInstance(dataset, Dataset)
        self.assertEqual(len(dataset), 4)
        self.assertEqual(dataset[0][1].name, 'Saint Louis Park')
        self.assertEqual(dataset[3][1].admin2, '')

    def test_load_csv_fails_on_malformed_row(self):
        with open(self.test_csv_file, 'a', newline='') as f:
            f.write('12.5,not-a-number,Nowhere,A,B,C\n')
        with self.assertRaises(DataFormatError) as ctx:
            load_csv(self.test_csv_file)
        # Header is line 1, so the appended row is line 6 of the file.
        self.assertEqual(ctx.exception.row_number, 6)
        self.assertEqual(ctx.exception.source, self.test_csv_file)
        self.assertIn(f'row 6 of {self.test_csv_file}', str(ctx.exception))

    def test_load_csv_skips_blank_lines(self):
        with open(self.test_csv_file, 'a', newline='') as f:
            f.write('\n-33.86785,151.20732,Sydney,New South Wales,,AU\n\n')
        dataset = load_csv(self.test_csv_file)
        self.assertEqual(len(dataset), 5)
        self.assertEqual(dataset[4][1].name, 'Sydney')

    def test_load_csv_blank_line_keeps_file_line_numbers(self):
        with open(self.test_csv_file, 'a', newline='') as f:
            f.write('\n\nnorth,1,A,B,C,D\n')
        with self.assertRaises(DataFormatError) as ctx:
            load_csv(self.test_csv_file)
        self.assertEqual(ctx.exception.row_number, 8)

    def test_load_csv_oversized_field(self):
        with open(self.test_csv_file, 'a', newline='') as f:
            f.write('1.0,2.0,' + 'x' * 200000 + ',A,B,C\n')
        with self.assertRaises(DataFormatError) as ctx:
            load_csv(self.test_csv_file)
        self.assertEqual(ctx.exception.row_number, 6)
        self.assertIn('field limit', ctx.exception.reason)
        self.assertIsInstance(ctx.exception.__cause__, csv.Error)

    def test_load_csv_invalid_encoding(self):
        with open(self.test_csv_file, 'ab') as f:
            f.write(b'48.8566,2.3522,Caf\xe9,Ile-de-France,Paris,FR\n')
        with self.assertRaises(DataFormatError) as ctx:
            load_csv(self.test_csv_file)
        self.assertEqual(ctx.exception.row_number, 6)
        self.assertIn('utf-8', ctx.exception.reason)

    def test_load_csv_other_encoding(self):
        with open(self.test_csv_file, 'ab') as f:
            f.write(b'48.8566,2.3522,Caf\xe9,Ile-de-France,Paris,FR\n')
        dataset = load_csv(self.test_csv_file, encoding='latin-1')
        self.assertEqual(dataset[4][1].name, 'Café')

    def test_load_csv_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_csv(self.test_csv_file + '.missing')

    def test_bundled_dataset(self):
        dataset = load_csv(DEFAULT_DATASET_PATH)
        self.assertGreater(len(dataset), 0)
        self.assertIn('Saint Louis Park', [r.name for r in dataset.records()])


if __name__ == '__main__':
    unittest.main()
