from datetime import datetime

from conftest import make_enriched

from photo_copier.organization.validators import (
    ExcludePatternValidator, MaxDateValidator, MinDateValidator, build_validators,
)


def test_min_date(tmp_path):
    v = MinDateValidator(datetime(2024, 1, 1))
    assert v.validate(make_enriched(tmp_path / "a.jpg", datetime(2024, 1, 1))).is_valid
    result = v.validate(make_enriched(tmp_path / "a.jpg", datetime(2023, 12, 31, 23, 59)))
    assert not result.is_valid
    assert result.validator_name == "MinDateValidator"
    assert "before" in result.reason


def test_max_date_includes_the_whole_day(tmp_path):
    v = MaxDateValidator(datetime(2024, 1, 31))
    assert v.validate(make_enriched(tmp_path / "a.jpg", datetime(2024, 1, 31, 22, 0))).is_valid
    assert not v.validate(make_enriched(tmp_path / "a.jpg", datetime(2024, 2, 1))).is_valid


def test_max_date_with_explicit_time(tmp_path):
    v = MaxDateValidator(datetime(2024, 1, 31, 12, 0))
    assert not v.validate(make_enriched(tmp_path / "a.jpg", datetime(2024, 1, 31, 13, 0))).is_valid


def test_exclude_patterns_relative_to_source(tmp_path):
    root = tmp_path / "src"
    v = ExcludePatternValidator(["*.aae", "thumbs/*", "*_THUMB*"], root)

    assert not v.validate(make_enriched(root / "IMG_0001.AAE", datetime(2024, 1, 1))).is_valid
    assert not v.validate(make_enriched(root / "deep" / "IMG_0002.aae", datetime(2024, 1, 1))).is_valid
    assert not v.validate(make_enriched(root / "thumbs" / "a.jpg", datetime(2024, 1, 1))).is_valid
    assert not v.validate(make_enriched(root / "x" / "pic_thumb.jpg", datetime(2024, 1, 1))).is_valid
    assert v.validate(make_enriched(root / "keep" / "a.jpg", datetime(2024, 1, 1))).is_valid


def test_exclude_reason_names_pattern(tmp_path):
    v = ExcludePatternValidator(["*.tmp.jpg"], tmp_path)
    result = v.validate(make_enriched(tmp_path / "x.tmp.jpg", datetime(2024, 1, 1)))
    assert result.reason == "File matches exclude pattern '*.tmp.jpg'"


def test_build_validators(make_options):
    assert build_validators(make_options()) == []

    validators = build_validators(make_options(
        min_date=datetime(2020, 1, 1), max_date=datetime(2021, 1, 1), exclude_patterns=["*.aae"]))
    assert [v.name for v in validators] == ["MinDateValidator", "MaxDateValidator", "ExcludePatternValidator"]
