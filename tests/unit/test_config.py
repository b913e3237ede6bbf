"""Unit tests for the classifier configuration model."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from readassign.models.config import AlgorithmKind, ClassifierConfig, SchemeConfig


class TestClassifierConfig:
    """Tests for ClassifierConfig defaults and validation."""

    def test_default_values(self):
        config = ClassifierConfig()
        assert config.min_score == 50.0
        assert config.max_expected == 0.01
        assert config.min_percent_identity == 0.0
        assert config.top_percent == 10.0
        assert config.min_support_percent == 0.05
        assert config.min_support == 0
        assert config.weighted_lca_percent == 80.0
        assert config.long_read_cover_percent == 51.0
        assert not config.paired_reads
        assert config.taxonomy_scheme == "Taxonomy"

    def test_config_is_frozen(self):
        config = ClassifierConfig()
        with pytest.raises(ValidationError):
            config.min_score = 10.0

    @pytest.mark.parametrize(
        ("field", "value"),
        [
            ("top_percent", 101.0),
            ("top_percent", -1.0),
            ("min_score", -5.0),
            ("min_percent_identity", 100.5),
            ("min_support", -1),
            ("weighted_lca_percent", 0.0),
            ("min_complexity", 1.5),
        ],
    )
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ValidationError):
            ClassifierConfig(**{field: value})

    def test_both_lca_modes_warn(self, caplog):
        ClassifierConfig(use_long_read_lca=True, use_weighted_lca=True)
        assert "long-read LCA takes precedence" in caplog.text


class TestAlgorithmSelection:
    """Tests for per-scheme algorithm selection."""

    def test_taxonomy_defaults_to_lca(self):
        assert ClassifierConfig().algorithm_for("Taxonomy") is AlgorithmKind.LCA

    def test_other_schemes_default_to_best_hit(self):
        assert ClassifierConfig().algorithm_for("EC") is AlgorithmKind.BEST_HIT

    def test_long_read_takes_precedence(self):
        config = ClassifierConfig(use_long_read_lca=True, use_weighted_lca=True)
        assert config.algorithm_for("Taxonomy") is AlgorithmKind.LONG_READ_LCA
        assert config.algorithm_for("EC") is AlgorithmKind.BEST_HIT

    def test_weighted_lca(self):
        config = ClassifierConfig(use_weighted_lca=True)
        assert config.algorithm_for("Taxonomy") is AlgorithmKind.WEIGHTED_LCA

    def test_scheme_lca_flag(self):
        config = ClassifierConfig(
            schemes={"SEED": SchemeConfig(use_lca=True), "Taxonomy": SchemeConfig(use_lca=False)}
        )
        assert config.algorithm_for("SEED") is AlgorithmKind.LCA
        assert config.algorithm_for("Taxonomy") is AlgorithmKind.BEST_HIT

    def test_top_percent_disabled_for_long_reads(self):
        config = ClassifierConfig(use_long_read_lca=True, top_percent=5.0)
        assert config.top_percent_for("Taxonomy") == 100.0
        assert config.top_percent_for("EC") == 5.0

    def test_is_hierarchical(self):
        assert not AlgorithmKind.BEST_HIT.is_hierarchical
        assert AlgorithmKind.LONG_READ_LCA.is_hierarchical

    def test_disabled_ids(self):
        config = ClassifierConfig(schemes={"Taxonomy": SchemeConfig(disabled_ids=frozenset({562}))})
        assert config.disabled_ids("Taxonomy") == {562}
        assert config.disabled_ids("EC") == frozenset()


class TestParameterString:
    """Tests for the stored parameter description."""

    def test_defaults(self):
        text = ClassifierConfig().parameter_string()
        assert text.startswith("minScore=50 maxExpected=0.01")
        assert "pairedReads=false" in text
        assert "LCA" not in text

    def test_algorithm_flags(self):
        text = ClassifierConfig(use_weighted_lca=True, use_identity_filter=True).parameter_string()
        assert "weightedLCA=true lcaPercent=80" in text
        assert "identityFilter=true" in text


class TestYaml:
    """Tests for YAML loading and saving."""

    def test_from_yaml_nested(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "filters:\n"
            "  min_score: 80\n"
            "  top_percent: 5\n"
            "lca:\n"
            "  weighted: true\n"
            "  weighted_percent: 70\n"
            "min_support:\n"
            "  percent: 0\n"
            "  count: 3\n"
            "paired_reads: true\n"
            "schemes:\n"
            "  EC:\n"
            "    use_lca: false\n"
            "  Taxonomy:\n"
            "    disabled_ids: [562, 564]\n"
            "unknown_section:\n"
            "  ignored: 1\n"
        )
        config = ClassifierConfig.from_yaml(path)
        assert config.min_score == 80.0
        assert config.top_percent == 5.0
        assert config.use_weighted_lca
        assert config.weighted_lca_percent == 70.0
        assert config.min_support_percent == 0.0
        assert config.min_support == 3
        assert config.paired_reads
        assert config.disabled_ids("Taxonomy") == {562, 564}
        assert config.algorithm_for("EC") is AlgorithmKind.BEST_HIT

    def test_yaml_roundtrip(self, tmp_path: Path):
        config = ClassifierConfig(
            min_score=75.0,
            use_long_read_lca=True,
            schemes={"EC": SchemeConfig(use_lca=False, disabled_ids=frozenset({7}))},
        )
        path = tmp_path / "config.yaml"
        config.to_yaml(path)
        assert ClassifierConfig.from_yaml(path) == config

    def test_yaml_must_be_mapping(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            ClassifierConfig.from_yaml(path)

    def test_invalid_yaml_value(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("filters:\n  top_percent: 150\n")
        with pytest.raises(ValidationError):
            ClassifierConfig.from_yaml(path)
