"""
TSV intake tests (no database).

Verifies:
- File-level metadata checks
- Header matching (trimmed, case-insensitive, order-sensitive)
- Row numbering counts the header and blank lines
- Column-count errors become structural errors, never candidates
- Normalization keeps barcode case
"""

import pytest

from posoffice.errors import StructuralParseError, UploadError
from posoffice.services import tsv

COLUMNS = ("barcode", "quantity")


class TestMetadata:
    def test_empty_file(self):
        with pytest.raises(UploadError) as exc:
            tsv.validate_metadata("stock.tsv", 0)
        assert "empty" in exc.value.message

    def test_wrong_suffix(self):
        with pytest.raises(UploadError) as exc:
            tsv.validate_metadata("stock.csv", 10)
        assert "Only .tsv files" in exc.value.message

    def test_suffix_is_case_insensitive(self):
        tsv.validate_metadata("STOCK.TSV", 10)

    def test_too_large(self):
        with pytest.raises(UploadError):
            tsv.validate_metadata("stock.tsv", 11, max_bytes=10)

    def test_invalid_utf8(self):
        with pytest.raises(UploadError):
            tsv.decode(b"\xff\xfe\x00bad")

    def test_bom_is_stripped(self):
        assert tsv.decode("\ufeffbarcode\tquantity".encode("utf-8")) == "barcode\tquantity"


class TestHeader:
    def test_header_is_trimmed_and_lowercased(self):
        parsed = tsv.parse_tsv(" Barcode \tQUANTITY\nB1\t1", COLUMNS)
        assert parsed.columns == COLUMNS
        assert len(parsed.candidates) == 1

    def test_header_order_matters(self):
        with pytest.raises(UploadError) as exc:
            tsv.parse_tsv("quantity\tbarcode\n1\tB1", COLUMNS)
        assert exc.value.message == (
            "Invalid file headers. Expected columns: [barcode, quantity], but found: [quantity, barcode]"
        )

    def test_missing_header(self):
        with pytest.raises(UploadError):
            tsv.parse_tsv("\nB1\t1", COLUMNS)


class TestRows:
    def test_row_numbers_are_physical_lines(self):
        text = "barcode\tquantity\nB1\t1\n\n   \nB2\t2\n"
        parsed = tsv.parse_tsv(text, COLUMNS)
        assert [c.row_number for c in parsed.candidates] == [2, 5]
        assert parsed.structural_errors == []

    def test_wrong_column_count_is_structural(self):
        text = "barcode\tquantity\nB1\t1\nB2\nB3\t3\textra"
        parsed = tsv.parse_tsv(text, COLUMNS)

        assert [c.fields["barcode"] for c in parsed.candidates] == ["B1"]
        assert parsed.structural_errors == [
            StructuralParseError(3, "Error in row #3: Invalid number of columns. Expected 2, but found 1"),
            StructuralParseError(4, "Error in row #4: Invalid number of columns. Expected 2, but found 3"),
        ]

    def test_crlf_line_endings(self):
        parsed = tsv.parse_tsv("barcode\tquantity\r\nB1\t1\r\nB2\t2\r\n", COLUMNS)
        assert [c.row_number for c in parsed.candidates] == [2, 3]

    def test_normalization_keeps_barcode_case(self):
        parsed = tsv.parse_tsv(
            "barcode\tname\n  AbC-1 \t  Blue SHIRT \n",
            ("barcode", "name"),
        )
        row = parsed.candidates[0]
        assert row.fields == {"barcode": "AbC-1", "name": "blue shirt"}
        assert row.raw == ("  AbC-1 ", "  Blue SHIRT ")


class TestReportWriter:
    def test_layout_with_unparsed_section(self):
        parsed = tsv.parse_tsv("barcode\tquantity\nB1\t1\nbroken", COLUMNS)
        body = tsv.write_upload_report(
            parsed.columns,
            [(parsed.candidates[0], tsv.STATUS_SUCCESS)],
            parsed.structural_errors,
        ).decode("utf-8")

        assert body == (
            "barcode\tquantity\tstatus/error\n"
            "B1\t1\tSUCCESS\n"
            "\n"
            "--- The following rows could not be parsed ---\n"
            "Error in row #3: Invalid number of columns. Expected 2, but found 1\n"
        )

    def test_no_unparsed_section_when_clean(self):
        parsed = tsv.parse_tsv("barcode\tquantity\nB1\t1", COLUMNS)
        body = tsv.write_upload_report(parsed.columns, [(parsed.candidates[0], "SUCCESS")], [])
        assert tsv.UNPARSED_SECTION_TITLE.encode() not in body

    def test_tabs_in_status_are_flattened(self):
        assert tsv.escape_field("a\tb\nc") == "a b c"
