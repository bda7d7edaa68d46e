"""Tests for the command-line interface."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from annopatch.__main__ import main, parse_args


class TestParseArgs:
    """Tests for argument parsing."""

    def test_defaults(self) -> None:
        """Test default values."""
        args = parse_args(["in.vcf"])

        assert args.in_file == Path("in.vcf")
        assert args.annotations == []
        assert args.output is None
        assert args.workers == 0
        assert args.chunk_size == 1000
        assert not args.processes
        assert not args.lenient
        assert args.log_level == "info"

    def test_annotation_pairs_keep_order(self) -> None:
        """Test that annotation sources are collected in order."""
        args = parse_args(
            ["in.vcf", "--annotation", "a.tsv", "a.yaml", "--annotation", "b.tsv", "b.yaml"]
        )

        assert args.annotations == [
            [Path("a.tsv"), Path("a.yaml")],
            [Path("b.tsv"), Path("b.yaml")],
        ]

    @pytest.mark.parametrize(
        "argv",
        [
            ["in.vcf", "--workers", "-1"],
            ["in.vcf", "--chunk-size", "0"],
            ["in.vcf", "--annotation", "a.tsv"],
        ],
    )
    def test_invalid_arguments(self, argv: list) -> None:
        """Test that invalid arguments are rejected."""
        with pytest.raises(SystemExit):
            parse_args(argv)


class TestMain:
    """Tests for running the command-line interface."""

    def test_writes_output_file(
        self,
        tmp_path: Path,
        sample_vcf_path: Path,
        sample_annotations_path: Path,
        sample_spec_path: Path,
    ) -> None:
        """Test a successful run."""
        output = tmp_path / "out.vcf"

        result = main(
            [
                str(sample_vcf_path),
                "--annotation",
                str(sample_annotations_path),
                str(sample_spec_path),
                "--output",
                str(output),
                "--workers",
                "2",
            ]
        )

        assert result == 0
        assert "SC=0.9,0.1" in output.read_text()

    def test_spec_error_returns_1(
        self,
        tmp_path: Path,
        sample_vcf_path: Path,
        sample_annotations_path: Path,
        write_file: Callable[[str, str], Path],
    ) -> None:
        """Test that spec errors are reported and no output is written."""
        spec = write_file("bad.yaml", "Rules: [{Column: Gene, Info: GENE}]\n")
        output = tmp_path / "out.vcf"

        result = main(
            [
                str(sample_vcf_path),
                "--annotation",
                str(sample_annotations_path),
                str(spec),
                "--output",
                str(output),
            ]
        )

        assert result == 1
        assert not output.exists()

    def test_missing_input_returns_1(self, tmp_path: Path) -> None:
        """Test that I/O errors are reported."""
        result = main([str(tmp_path / "missing.vcf"), "-o", str(tmp_path / "out.vcf")])

        assert result == 1
        assert not (tmp_path / "out.vcf").exists()

    def test_invalid_utf8_returns_1(
        self,
        tmp_path: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test that undecodable input is reported with its location."""
        vcf = tmp_path / "in.vcf"
        vcf.write_bytes(b"##fileformat=VCFv4.2\nchr1\t100\t.\tA\tG\t.\t.\tX=\xff\xfe\n")
        output = tmp_path / "out.vcf"

        result = main([str(vcf), "-o", str(output)])

        assert result == 1
        assert not output.exists()
        assert "in.vcf:2: invalid UTF-8 byte 0xff" in caplog.text
