"""
Tests for the GFF3 tokenizer and reference resolver.
"""

import io

import pytest

from conftest import GFF3_TEXT, tsv
from modtab.core.export import feature_tables
from modtab.core.gff3 import GFF3Parser, make_location
from modtab.core.model import CVTerm, Feature, Organism
from modtab.core.store import FeatureStore
from modtab.io.gff import canonical_build, parse_attributes, parse_genome_build, parse_line
from modtab.util.errors import ParseError

HEADER = (("##gff-version 3",), ("##genome-build FlyBase r5",))


def gff(*rows, header=HEADER):
    return io.StringIO(tsv(*header, *rows))


def parse_one(handle, builds, error_logger, **kwargs):
    store = kwargs.pop("store", FeatureStore())
    with GFF3Parser(handle, builds=builds, store=store, logger=error_logger, **kwargs) as parser:
        features = parser.parse()
    return {feature.uniquename: feature for feature in features}, store


class TestTokenizer:
    def test_parse_attributes(self):
        assert parse_attributes("ID=a;Parent=p1,p2;;Note=x=y") == {
            "ID": ["a"],
            "Parent": ["p1", "p2"],
            "Note": ["x=y"],
        }

    def test_attribute_without_equals(self):
        with pytest.raises(ParseError, match="var=val"):
            parse_attributes("ID=a;loose", 4)

    def test_wrong_field_count(self):
        with pytest.raises(ParseError, match="Invalid number of fields: 3") as excinfo:
            parse_line("2L\ttest\tgene", 12)
        assert excinfo.value.line == 12

    def test_genome_build_directive(self):
        assert parse_genome_build("##genome-build FlyBase r5.3") == ("FlyBase", "r5.3")
        assert parse_genome_build("##gff-version 3") is None

    def test_flybase_point_releases_share_r5(self):
        assert canonical_build("FlyBase", "r5.3") == "r5"
        assert canonical_build("FlyBase", "r4.3") == "r4.3"
        assert canonical_build("WormBase", "r5.3") == "r5.3"


class TestLocations:
    def test_one_based_round_trip(self):
        location = make_location(100, 200, "+")
        assert (location.fmin, location.fmax, location.strand) == (99, 200, 1)
        assert location.one_based() == (100, 200)

    def test_strands(self):
        assert make_location(1, 2, "-").strand == -1
        assert make_location(1, 2, ".").strand == 0

    def test_start_after_end(self):
        with pytest.raises(ParseError, match="greater than end"):
            make_location(300, 200, "+")


class TestGFF3Parser:
    def test_features_and_source_feature(self, gff3_handle, builds, error_logger, caplog):
        features, store = parse_one(gff3_handle, builds, error_logger)
        assert list(features) == ["gene1", "tx1", "cds1"]
        assert "Setting FlyBase build r5.3 to r5 for consistency." in caplog.text

        gene = features["gene1"]
        assert gene.name == "Gene1"
        assert str(gene.type) == "SO:gene"
        assert str(gene.organism) == "Drosophila melanogaster"
        (location,) = gene.locations
        assert (location.fmin, location.fmax, location.strand) == (99, 200, 1)
        assert location.srcfeature == ("2L", "chromosome_arm")

        chromosome = store.find_feature("2L", "chromosome_arm")
        assert chromosome is not None
        assert (chromosome.locations[0].fmin, chromosome.locations[0].fmax) == (0, 23011544)
        assert len(store) == 4

    def test_cds_lines_merge_into_one_feature(self, gff3_handle, builds, error_logger):
        features, _ = parse_one(gff3_handle, builds, error_logger)
        cds = features["cds1"]
        assert [loc.rank for loc in cds.locations] == [0, 1]
        assert [loc.one_based() for loc in cds.locations] == [(120, 150), (170, 190)]

    def test_parent_relationships(self, gff3_handle, builds, error_logger):
        features, _ = parse_one(gff3_handle, builds, error_logger)
        assert features["tx1"].parents() == [("gene1", "gene")]
        assert features["gene1"].children() == [("tx1", "mRNA")]
        (relationship,) = features["gene1"].relationships
        assert str(relationship.type) == "SO:part_of"

    def test_parental_relationship_overrides_type(self, builds, error_logger):
        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"),
            ("2L", "t", "mRNA", "1", "10", ".", "+", ".", "ID=m;Parent=g;parental_relationship=derives_from/g"),
        )
        features, _ = parse_one(handle, builds, error_logger)
        assert features["m"].relationships[0].type.name == "derives_from"
        assert not any(prop.type.name == "parental_relationship" for prop in features["m"].properties)

    def test_malformed_parental_relationship(self, builds, error_logger):
        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"),
            ("2L", "t", "mRNA", "1", "10", ".", "+", ".", "ID=m;Parent=g;parental_relationship=g"),
        )
        with pytest.raises(ParseError, match="Malformed parental relationship"):
            parse_one(handle, builds, error_logger)

    def test_duplicate_id(self, builds, error_logger):
        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"),
            ("2L", "t", "gene", "20", "30", ".", "+", ".", "ID=g"),
        )
        with pytest.raises(ParseError, match="Duplicate id g") as excinfo:
            parse_one(handle, builds, error_logger)
        assert excinfo.value.line == 4

    def test_missing_parent(self, builds, error_logger):
        handle = gff(("2L", "t", "mRNA", "1", "10", ".", "+", ".", "ID=m;Parent=nowhere"))
        with pytest.raises(ParseError, match="nowhere for relationship with m not found"):
            parse_one(handle, builds, error_logger)

    def test_missing_build_directive(self, builds, error_logger):
        handle = gff(("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"), header=())
        with pytest.raises(ParseError, match="No genome-build directive"):
            parse_one(handle, builds, error_logger)

    def test_unknown_build(self, builds, error_logger):
        handle = gff(header=(("##genome-build WormBase WS180",),))
        with pytest.raises(ParseError, match="Build data for WormBase WS180 not found"):
            parse_one(handle, builds, error_logger)

    def test_unknown_seqid(self, builds, error_logger):
        handle = gff(("3R", "t", "gene", "1", "10", ".", "+", ".", "ID=g"))
        with pytest.raises(ParseError, match="No build info for 3R"):
            parse_one(handle, builds, error_logger)

    def test_start_after_end_reports_line(self, builds, error_logger):
        handle = gff(("2L", "t", "gene", "10", "1", ".", "+", ".", "ID=g"))
        with pytest.raises(ParseError) as excinfo:
            parse_one(handle, builds, error_logger)
        assert excinfo.value.line == 3

    def test_id_falls_back_to_name_then_counter(self, builds, error_logger):
        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "Name=named"),
            ("2L", "t", "gene", "20", "30", ".", "+", ".", "Note=anonymous"),
        )
        features, _ = parse_one(handle, builds, error_logger)
        assert list(features) == ["named", "ID000001"]

    def test_self_located_feature(self, builds, error_logger):
        handle = gff(
            ("2L", "FlyBase", "chromosome_arm", "1", "23011544", ".", ".", ".", "ID=2L"),
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"),
        )
        features, store = parse_one(handle, builds, error_logger)
        assert features["2L"].locations[0].srcfeature is None
        assert features["g"].locations[0].srcfeature == ("2L", "chromosome_arm")
        assert len(store) == 2

    def test_target_makes_analysis_feature(self, builds, error_logger):
        handle = gff(
            ("2L", "t", "gene", "100", "200", ".", "+", ".", "ID=g"),
            ("2L", "blastx", "match", "100", "200", "50.5", "+", ".", "ID=hit;Target=g 1 100;Gap=M100;normscore=0.9"),
        )
        features, _ = parse_one(handle, builds, error_logger, source_prefix="fly")
        hit = features["hit"]
        assert hit.is_analysis
        genomic, target = hit.locations
        assert (target.rank, target.srcfeature, target.strand) == (1, ("g", "gene"), 1)
        assert (target.fmin, target.fmax, target.residue_info) == (0, 100, "M100")
        (analysis_feature,) = hit.analysisfeatures
        assert analysis_feature.analysis.program == "fly:blastx"
        assert (analysis_feature.rawscore, analysis_feature.normscore) == (50.5, 0.9)

    def test_score_without_target(self, builds, error_logger):
        handle = gff(("2L", "peaks", "binding_site", "1", "10", "7", "+", ".", "ID=peak"))
        features, _ = parse_one(handle, builds, error_logger)
        peak = features["peak"]
        assert not peak.is_analysis
        assert peak.analysisfeatures[0].analysis.program == "peaks"

    def test_properties_and_external_evidence(self, builds, error_logger, caplog):
        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".",
             "ID=g;Note=hello;external_evidence=modENCODE_123,SRA_9;prediction_status=Predicted;Alias=x"),
        )
        features, _ = parse_one(handle, builds, error_logger)
        gene = features["g"]
        names = [prop.type.name for prop in gene.properties]
        assert "Note" in names
        assert "Alias" not in names
        assert ("modencode", "Predicted") in [(p.type.cv, p.value) for p in gene.properties]
        (dbxref,) = gene.dbxrefs
        assert (dbxref.db.name, dbxref.db.url, dbxref.accession) == ("modencode_submission", "123", "modENCODE_123")
        assert 'Unknown external_evidence ID type "SRA_9"' in caplog.text

    def test_id_callback_normalizes_ids_and_references(self, builds, error_logger):
        def upper(raw_id, *rest):
            return raw_id.upper() if raw_id and raw_id != "2L" else raw_id

        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g1"),
            ("2L", "t", "mRNA", "1", "10", ".", "+", ".", "ID=m1;Parent=g1"),
        )
        features, _ = parse_one(handle, builds, error_logger, id_callback=upper)
        assert list(features) == ["G1", "M1"]
        assert features["M1"].parents() == [("G1", "gene")]

    def test_subgroups_and_existing_features(self, builds, error_logger, caplog):
        store = FeatureStore()
        handle = gff(
            ("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"),
            ("###",),
            ("2L", "t", "mRNA", "1", "10", ".", "+", ".", "ID=m"),
        )
        with GFF3Parser(handle, builds=builds, store=store, logger=error_logger) as parser:
            subgroups = [[f.uniquename for f in subgroup] for subgroup in parser]
        assert subgroups == [["g"], ["m"]]

        builds["FlyBase"]["r5"]["2L"]["organism"] = "Drosophila simulans"
        handle = gff(("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"))
        features, _ = parse_one(handle, builds, error_logger, store=store)
        assert features["g"] is store.find_feature("g", "gene")
        assert str(features["g"].organism) == "Drosophila melanogaster"
        assert "Assuming the original organism is correct!" in caplog.text

    def test_reused_feature_keeps_its_organism(self, builds, error_logger, caplog):
        store = FeatureStore()
        seeded = store.add(
            Feature(uniquename="g", type=CVTerm(name="gene", cv="SO"), organism=Organism("Drosophila", "simulans"))
        )
        handle = gff(("2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"))
        features, _ = parse_one(handle, builds, error_logger, store=store)
        assert features["g"] is seeded
        assert str(seeded.organism) == "Drosophila simulans"
        assert 'The previously seen feature "g" of type "gene"' in caplog.text
        assert "Assuming the original organism is correct!" in caplog.text

    def test_unresolvable_target(self, builds, error_logger):
        handle = gff(("2L", "blastx", "match", "100", "200", "50.5", "+", ".", "ID=hit;Target=nowhere 1 100"))
        with pytest.raises(ParseError, match="No feature found for target nowhere") as excinfo:
            parse_one(handle, builds, error_logger)
        assert excinfo.value.line == 3

    def test_repeated_cds_lines_add_relationships_once(self, gff3_handle, builds, error_logger):
        features, _ = parse_one(gff3_handle, builds, error_logger)
        assert features["cds1"].parents() == [("tx1", "mRNA")]
        assert features["tx1"].children() == [("cds1", "CDS")]
        relationships = feature_tables(features.values())["feature_relationships"]
        assert list(zip(relationships["subject"], relationships["object"])) == [("tx1", "gene1"), ("cds1", "tx1")]

    def test_repeated_cds_lines_add_properties_once(self, builds, error_logger):
        handle = gff(
            ("2L", "t", "mRNA", "100", "200", ".", "+", ".", "ID=tx"),
            ("2L", "t", "CDS", "120", "150", ".", "+", "0", "ID=c;Parent=tx;Note=coding;prediction_status=validated"),
            ("2L", "t", "CDS", "170", "190", ".", "+", "0", "ID=c;Parent=tx;Note=coding;prediction_status=validated"),
        )
        features, _ = parse_one(handle, builds, error_logger)
        props = [(p.type.name, p.type.cv, p.value) for p in features["c"].properties]
        assert props == [
            ("Note", "GFF", "coding"),
            ("prediction_status", "GFF", "validated"),
            ("prediction_status", "modencode", "validated"),
        ]
        assert len(features["c"].locations) == 2

    def test_strip_chr(self, builds, error_logger):
        handle = gff(("chr2L", "t", "gene", "1", "10", ".", "+", ".", "ID=g"))
        features, _ = parse_one(handle, builds, error_logger, strip_chr=True)
        assert features["g"].locations[0].srcfeature == ("2L", "chromosome_arm")

    def test_reads_from_path(self, tmp_path, builds, error_logger):
        path = tmp_path / "annotations.gff3"
        path.write_text(GFF3_TEXT)
        features, _ = parse_one(str(path), builds, error_logger)
        assert "cds1" in features

    def test_missing_path(self, tmp_path, builds, error_logger):
        with pytest.raises(ParseError, match="Error reading"):
            GFF3Parser(str(tmp_path / "missing.gff3"), builds=builds, logger=error_logger)
