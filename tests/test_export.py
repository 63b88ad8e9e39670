"""
Tests for warehouse table export and the load pipeline.
"""

import json

import pytest

from conftest import GFF3_TEXT, SDRF_TEXT, tsv
from modtab.cli import build_parser, dispatch
from modtab.core.export import (
    applied_protocols_frame,
    data_frame,
    experiment_tables,
    feature_tables,
    locations_frame,
)
from modtab.core.gff3 import make_location
from modtab.core.model import CVTerm, Feature, FeatureRelationship
from modtab.core.sdrf import SDRFParser
from modtab.io.tsv import table_path, write_table, write_tables

BUILDS_ROWS = (
    ("source", "build", "seqid", "organism", "type", "start", "end"),
    ("FlyBase", "r5", "2L", "Drosophila melanogaster", "chromosome_arm", "1", "23011544"),
)


class TestFrames:
    def test_experiment_tables(self, error_logger):
        experiment = SDRFParser(error_logger).parse_text(SDRF_TEXT)
        tables = experiment_tables(experiment)
        assert set(tables) == {"experiment_properties", "applied_protocols", "data"}

        applied = applied_protocols_frame(experiment)
        assert list(applied["slot"]) == [0, 0, 1, 1]
        assert applied.loc[2, "inputs"] == "Sample Name=sample_a"
        assert applied.loc[2, "outputs"] == "Result File [reads]=a.fastq"

        data = data_frame(experiment)
        # a threaded sample is listed once, not once per stage
        assert len(data) == 8
        assert list(data["value"][:3]) == ["25", "embryos", "sample_a"]

    def test_locations_round_trip(self):
        feature = Feature(uniquename="g", type=CVTerm(name="gene", cv="SO"))
        feature.add_location(make_location(100, 200, "+", srcfeature=("2L", "chromosome_arm")))
        frame = locations_frame([feature])
        row = frame.iloc[0]
        assert (row["fmin"], row["fmax"], row["strand"]) == (99, 200, 1)
        assert (row["start"], row["end"]) == (100, 200)
        assert row["srcfeature"] == "2L"

    def test_relationship_emitted_once(self):
        gene = Feature(uniquename="g", type=CVTerm(name="gene", cv="SO"))
        mrna = Feature(uniquename="m", type=CVTerm(name="mRNA", cv="SO"))
        relationship = FeatureRelationship(subject=mrna.key, object=gene.key)
        gene.add_relationship(relationship)
        mrna.add_relationship(relationship)
        tables = feature_tables([gene, mrna])
        relationships = tables["feature_relationships"]
        assert len(relationships) == 1
        assert relationships.iloc[0]["subject"] == "m"
        assert relationships.iloc[0]["type"] == "part_of"

    def test_write_jsonl_nulls(self, tmp_path):
        feature = Feature(uniquename="g", type=CVTerm(name="gene"))
        feature.add_location(make_location(None, None, "."))
        path = table_path(tmp_path, "feature_locations", "jsonl")
        write_table(locations_frame([feature]), path, fmt="jsonl")
        record = json.loads(path.read_text().splitlines()[0])
        assert record["fmin"] is None
        assert record["uniquename"] == "g"

    def test_unsupported_format(self, tmp_path):
        with pytest.raises(ValueError):
            table_path(tmp_path, "features", "xlsx")
        with pytest.raises(ValueError, match="xlsx"):
            write_table(locations_frame([]), tmp_path / "features.xlsx", fmt="xlsx")

    def test_write_tables_one_file_per_table(self, tmp_path):
        feature = Feature(uniquename="g", type=CVTerm(name="gene", cv="SO"))
        feature.add_location(make_location(None, None, "."))
        paths = write_tables(feature_tables([feature]), tmp_path / "out", "csv")
        assert [path.name for path in paths] == [
            "features.csv",
            "feature_locations.csv",
            "feature_relationships.csv",
            "feature_properties.csv",
        ]
        header, row = (tmp_path / "out" / "feature_locations.csv").read_text().splitlines()
        assert ",," in row


class TestCommandLine:
    def test_idf_command(self, submission_dir, tmp_path):
        out = tmp_path / "out"
        args = build_parser().parse_args(["idf", "--idf", str(submission_dir / "idf.txt"), "--out", str(out)])
        dispatch(args)
        for name in ("experiment_properties.tsv", "applied_protocols.tsv", "data.tsv", "SUMMARY.txt", "run.jsonl"):
            assert (out / name).exists()
        summary = (out / "SUMMARY.txt").read_text()
        assert "command: idf" in summary
        assert "read_counts: pass" in summary
        run = json.loads((out / "run.jsonl").read_text())
        assert run["counts"]["protocols"] == 2

    def test_gff3_command(self, tmp_path):
        (tmp_path / "builds.tsv").write_text(tsv(*BUILDS_ROWS))
        (tmp_path / "a.gff3").write_text(GFF3_TEXT)
        out = tmp_path / "out"
        args = build_parser().parse_args(
            [
                "gff3",
                "--gff3", str(tmp_path / "a.gff3"),
                "--builds", str(tmp_path / "builds.tsv"),
                "--out", str(out),
                "--emit", "csv",
            ]
        )
        dispatch(args)
        features = (out / "features.csv").read_text().splitlines()
        assert len(features) == 5
        assert (out / "feature_locations.csv").exists()
        assert (out / "genome_builds.csv").exists()

    def test_gff3_fasta_needs_build_details(self, tmp_path):
        (tmp_path / "genome.fa").write_text(">chr2L\nACGT\n")
        args = build_parser().parse_args(
            ["gff3", "--gff3", "x.gff3", "--fasta", str(tmp_path / "genome.fa"), "--out", str(tmp_path)]
        )
        with pytest.raises(SystemExit, match="--source, --build, --organism"):
            dispatch(args)

    def test_errors_become_system_exit(self, tmp_path):
        args = build_parser().parse_args(["idf", "--idf", str(tmp_path / "missing.idf"), "--out", str(tmp_path)])
        with pytest.raises(SystemExit, match="Can't read IDF file"):
            dispatch(args)

    def test_no_command(self):
        with pytest.raises(SystemExit):
            dispatch(build_parser().parse_args([]))
