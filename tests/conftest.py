"""
Pytest configuration and shared fixtures.
"""

import io
import logging
from pathlib import Path

import pytest

from modtab.core.vocab import CVRegistry
from modtab.util.logging import ErrorLogger

TEST_LOGGER_NAME = "modtab_tests"


def tsv(*rows) -> str:
    """Join rows of cells into tab-delimited text."""
    return "\n".join("\t".join(row) for row in rows) + "\n"


SDRF_TEXT = tsv(
    ("Source Name", "Term Source REF", "Protocol REF", "Parameter Value [temperature]", "Sample Name",
     "Protocol REF", "Result File [reads]"),
    ("embryos", "MO", "grow", "25", "sample_a", "seq", "a.fastq"),
    ("embryos", "MO", "grow", "25", "sample_b", "seq", "b.fastq"),
)

IDF_ROWS = [
    ("Investigation Title", "Fly embryo RNA"),
    ("Experimental Design", "time_series_design"),
    ("Experimental Design Term Source REF", "MO"),
    ("Person Last Name", "Smith", "Jones"),
    ("Person First Name", "Ann", "Bob"),
    ("Person Email", "ann@example.org"),
    ("Date of Experiment", "2008-01-01"),
    ("Public Release Date", "2009-01-01"),
    ("Experiment Description", "Fly_Embryo_RNA"),
    ("Protocol Name", "grow", "seq"),
    ("Protocol Type", "MO:grow", "sequencing"),
    ("Protocol Description", "grow flies", "sequence reads"),
    ("Protocol Term Source REF", "MO", "MO"),
    ("SDRF File", "sdrf.txt"),
    ("Term Source Name", "MO"),
    ("Term Source File", "http://mged.example.org/MO.owl"),
    ("Term Source Version", "1.3.1"),
]

BUILDS = {
    "FlyBase": {
        "r5": {
            "2L": {
                "organism": "Drosophila melanogaster",
                "type": "chromosome_arm",
                "start": 1,
                "end": 23011544,
            },
        },
    },
}

GFF3_TEXT = tsv(
    ("##gff-version 3",),
    ("##genome-build FlyBase r5.3",),
    ("2L", "test", "gene", "100", "200", ".", "+", ".", "ID=gene1;Name=Gene1;Note=first gene"),
    ("2L", "test", "mRNA", "100", "200", ".", "+", ".", "ID=tx1;Parent=gene1"),
    ("2L", "test", "CDS", "120", "150", ".", "+", "0", "ID=cds1;Parent=tx1"),
    ("2L", "test", "CDS", "170", "190", ".", "+", "0", "ID=cds1;Parent=tx1"),
    ("###",),
)


@pytest.fixture
def test_logger() -> logging.Logger:
    """A propagating logger so that caplog sees parser diagnostics."""
    logger = logging.getLogger(TEST_LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def error_logger(test_logger) -> ErrorLogger:
    return ErrorLogger(test_logger)


@pytest.fixture
def registry(error_logger) -> CVRegistry:
    """Fresh vocabulary registry, isolated from the process-wide one."""
    return CVRegistry(error_logger)


@pytest.fixture
def submission_dir(tmp_path) -> Path:
    """Directory holding an IDF and the SDRF it references."""
    (tmp_path / "sdrf.txt").write_text(SDRF_TEXT)
    (tmp_path / "idf.txt").write_text(tsv(*IDF_ROWS))
    return tmp_path


@pytest.fixture
def builds():
    return {
        source: {build: {seqid: dict(entry) for seqid, entry in seqids.items()} for build, seqids in by_build.items()}
        for source, by_build in BUILDS.items()
    }


@pytest.fixture
def gff3_handle():
    return io.StringIO(GFF3_TEXT)
