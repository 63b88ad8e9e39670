"""
Tests for the mapped-read sanity check.
"""

from modtab.core.model import (
    DB,
    AppliedProtocol,
    Attribute,
    CVTerm,
    Datum,
    DBXref,
    Experiment,
    ExperimentProperty,
    Protocol,
)
from modtab.core.readcounts import referenced_submissions, validate_read_counts


def experiment_with(**counts):
    experiment = Experiment()
    for name, value in counts.items():
        experiment.add_properties([ExperimentProperty(name=name, value=value)])
    return experiment


def referencing(experiment, submission):
    datum = Datum(heading="Result File", name="reads", value="reads.fastq")
    datum.add_attribute(
        Attribute(
            heading="modENCODE Reference",
            value="reads.fastq",
            termsource=DBXref(db=DB(name=f"modencode_{submission}", url=submission, description="modencode_submission")),
        )
    )
    experiment.applied_protocol_slots = [[AppliedProtocol(Protocol(name="seq"), output_data=[datum])]]
    return experiment


class TestValidateReadCounts:
    def test_no_counts_passes(self, error_logger):
        assert validate_read_counts(Experiment(), logger=error_logger)

    def test_enough_reads_mapped(self, error_logger, caplog):
        experiment = experiment_with(
            uniquely_mapped_read_count="400", multiply_mapped_read_count="100", read_count="1000"
        )
        assert validate_read_counts(experiment, logger=error_logger)
        assert "50% of reads were mapped" in caplog.text

    def test_too_few_reads_mapped(self, error_logger, caplog):
        experiment = experiment_with(uniquely_mapped_read_count="300", read_count="1000")
        assert not validate_read_counts(experiment, logger=error_logger)
        assert "must map at least 30%" in caplog.text

    def test_matched_by_type_name(self, error_logger):
        experiment = Experiment()
        experiment.add_properties(
            [
                ExperimentProperty(name="Mapped", value="900", type=CVTerm(name="uniquely_mapped_read_count")),
                ExperimentProperty(name="Total", value="1000", type=CVTerm(name="read_count")),
            ]
        )
        assert validate_read_counts(experiment, logger=error_logger)

    def test_missing_total(self, error_logger, caplog):
        experiment = experiment_with(uniquely_mapped_read_count="400")
        assert not validate_read_counts(experiment, logger=error_logger)
        assert "No total read count" in caplog.text

    def test_total_from_referenced_submission(self, error_logger, caplog):
        experiment = referencing(experiment_with(uniquely_mapped_read_count="400"), "123")
        totals = {"123": ["1000", "2000"]}
        assert validate_read_counts(experiment, lookup=lambda sub: totals.get(sub, []), logger=error_logger)
        assert "more than one total read count" in caplog.text
        assert "1000 total reads in submission 123" in caplog.text

    def test_bad_numbers(self, error_logger):
        experiment = experiment_with(uniquely_mapped_read_count="many", read_count="1000")
        assert not validate_read_counts(experiment, logger=error_logger)


class TestReferencedSubmissions:
    def test_collects_submission_ids(self):
        experiment = referencing(Experiment(), "42")
        assert referenced_submissions(experiment) == ["42"]

    def test_ignores_other_term_sources(self):
        experiment = Experiment()
        datum = Datum(heading="Source Name", value="x")
        datum.add_attribute(Attribute(heading="Strain", value="y", termsource=DBXref(db=DB(name="MO"))))
        experiment.applied_protocol_slots = [[AppliedProtocol(Protocol(name="grow"), input_data=[datum])]]
        assert referenced_submissions(experiment) == []
