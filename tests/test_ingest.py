"""Tests for record classification and CSV ingestion."""

import os
import tempfile
import unittest

from census_cube.ingest import read_records
from census_cube.records import (
    ClassifiedRecord,
    DimensionKind,
    Gender,
    RecordStore,
    classify_gender,
    classify_row,
    is_aggregate_label,
    parse_count,
    previous_period,
)

LONG_CSV = """통계표: 등록외국인 현황
행정구역(시군구)별,국적별,성별,시점,데이터
안산시,합계,계,2023,"1,000"
안산시,베트남,남자,2023,"1,200"
안산시,베트남,여자,2023,300
안산시,중국,계,2023,-
"""

WIDE_CSV = """행정구역별,체류자격별,2022 년,2023 년
안산시,E-9,100,120
안산시,합계,500,600
"""


class ClassificationTests(unittest.TestCase):

    def test_aggregate_labels(self):
        for label in ['합계', '소계', '총계', '계', '전체', 'Total', 'subtotal', ' ALL ']:
            self.assertTrue(is_aggregate_label(label), label)
        for label in ['베트남', 'E-9', 'Totalitarian']:
            self.assertFalse(is_aggregate_label(label), label)

    def test_gender_detection(self):
        self.assertEqual(classify_gender('남자'), Gender.MALE)
        self.assertEqual(classify_gender('Male'), Gender.MALE)
        self.assertEqual(classify_gender('여'), Gender.FEMALE)
        self.assertEqual(classify_gender('female'), Gender.FEMALE)
        self.assertEqual(classify_gender('계'), Gender.AGGREGATE)
        self.assertEqual(classify_gender(None), Gender.AGGREGATE)

    def test_count_parsing(self):
        self.assertEqual(parse_count('1,234'), 1234)
        self.assertEqual(parse_count(56), 56)
        self.assertEqual(parse_count(7.0), 7)
        self.assertIsNone(parse_count('-'))
        self.assertIsNone(parse_count(float('nan')))
        self.assertIsNone(parse_count(float('inf')))
        self.assertIsNone(parse_count(float('-inf')))

    def test_classify_row(self):
        record = classify_row('2023', '안산시', 'visa', ' E-9 ', None, '1,500')
        self.assertEqual(record, ClassifiedRecord('2023', '안산시', DimensionKind.VISA, 'E-9',
                                                  Gender.AGGREGATE, 1500, False))
        self.assertIsNone(classify_row('2023', '안산시', 'visa', 'E-9', None, 'n/a'))
        self.assertIsNone(classify_row('2023', '안산시', 'visa', 'E-9', None, '-5'))

    def test_previous_period(self):
        self.assertEqual(previous_period('2023'), '2022')
        self.assertEqual(previous_period('2023.06'), '2022')
        self.assertIsNone(previous_period('latest'))


class RecordStoreTests(unittest.TestCase):

    def test_append_only_and_order_independent(self):
        a = [classify_row('2023', 'X', 'nationality', '베트남', None, 10)]
        b = [classify_row('2022', 'Y', 'visa', 'E-9', None, 5)]
        first = RecordStore()
        first.extend(a)
        first.extend(b)
        second = RecordStore(b)
        second.extend(a)
        self.assertEqual(first.fingerprint(), second.fingerprint())
        self.assertEqual(first.periods(), ['2023', '2022'])
        self.assertEqual(first.regions(), ['X', 'Y'])
        self.assertEqual(len(first.select('2023', 'X')), 1)
        self.assertEqual(list(first.to_frame().columns),
                         ['period', 'region', 'dimension', 'label', 'gender', 'count', 'is_aggregate'])


class CsvIngestTests(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmpdir.cleanup()

    def write(self, name, content, encoding='utf-8'):
        path = os.path.join(self.tmpdir.name, name)
        with open(path, 'w', encoding=encoding) as f:
            f.write(content)
        return path

    def test_long_format(self):
        records = read_records([self.write('nat.csv', LONG_CSV)])
        self.assertEqual(len(records), 3)
        total = records[0]
        self.assertTrue(total.is_aggregate)
        self.assertEqual(total.count, 1000)
        self.assertEqual(total.gender, Gender.AGGREGATE)
        self.assertEqual(total.dimension, DimensionKind.NATIONALITY)
        self.assertEqual(records[1].gender, Gender.MALE)
        self.assertEqual(records[1].count, 1200)
        self.assertEqual(records[2].gender, Gender.FEMALE)
        self.assertEqual({r.period for r in records}, {'2023'})

    def test_wide_format_one_record_per_year(self):
        records = read_records([self.write('visa.csv', WIDE_CSV)])
        self.assertEqual(len(records), 4)
        self.assertEqual({r.dimension for r in records}, {DimensionKind.VISA})
        by_key = {(r.period, r.label): r.count for r in records}
        self.assertEqual(by_key[('2022', 'E-9')], 100)
        self.assertEqual(by_key[('2023', '합계')], 600)

    def test_euc_kr_fallback(self):
        records = read_records([self.write('visa_euckr.csv', WIDE_CSV, encoding='euc-kr')])
        self.assertEqual(len(records), 4)
        self.assertEqual(records[0].region, '안산시')

    def test_unrecognized_files_are_skipped(self):
        junk = self.write('junk.csv', "a,b\n1,2\n")
        no_dimension = self.write('nodim.csv', "행정구역별,성별,2023 년\n안산시,남,5\n")
        records = read_records([junk, no_dimension, self.write('visa.csv', WIDE_CSV)])
        self.assertEqual(len(records), 4)

    def test_missing_file_raises(self):
        with self.assertRaises(FileNotFoundError):
            read_records([os.path.join(self.tmpdir.name, 'missing.csv')])


if __name__ == "__main__":
    unittest.main()
