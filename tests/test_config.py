import pytest
from datetime import datetime
from pathlib import Path

from photo_copier import config
from photo_copier.config import CopyOptions, DuplicateHandling, validate_options
from photo_copier.exceptions import ConfigurationError


def test_extensions_are_normalized(src, dest):
    options = CopyOptions(source=src, destination=dest, allowed_extensions={"JPG", ".Mp4", " png "})
    assert options.allowed_extensions == {".jpg", ".mp4", ".png"}
    assert options.is_allowed(Path("IMG_0001.JPG"))
    assert options.is_allowed(Path("clip.MP4"))
    assert not options.is_allowed(Path("notes.txt"))


def test_paths_are_coerced(tmp_path):
    options = CopyOptions(source=str(tmp_path / "a"), destination=str(tmp_path / "b"))
    assert isinstance(options.source, Path)
    assert isinstance(options.destination, Path)


def test_valid_options_pass(make_options):
    validate_options(make_options(template="{year}/{month}/{city}/{name}{ext}"))


def test_placeholders_are_case_insensitive():
    assert config.find_unknown_placeholders("{YEAR}/{Month}/{name}{ext}") == []
    assert config.find_unknown_placeholders("{year}/{camera}/{name}") == ["camera"]


def test_all_problems_reported_together(make_options):
    options = make_options(
        template="{year}/{album}/{name}{ext}",
        duplicates_format="-copy",
        min_date=datetime(2024, 6, 1),
        max_date=datetime(2024, 1, 1),
    )
    with pytest.raises(ConfigurationError) as exc:
        validate_options(options)

    errors = exc.value.errors
    assert len(errors) == 3
    assert any("{album}" in e for e in errors)
    assert any("{number}" in e for e in errors)
    assert any("Min date" in e for e in errors)


def test_missing_source(tmp_path):
    options = CopyOptions(source=tmp_path / "nope", destination=tmp_path / "dest")
    with pytest.raises(ConfigurationError, match="does not exist"):
        validate_options(options)


def test_destination_inside_source(src):
    options = CopyOptions(source=src, destination=src / "sorted")
    with pytest.raises(ConfigurationError, match="inside the source"):
        validate_options(options)


def test_destination_same_as_source(src):
    options = CopyOptions(source=src, destination=src)
    with pytest.raises(ConfigurationError, match="same directory"):
        validate_options(options)


def test_destination_is_a_file(make_options, dest):
    dest.write_text("x")
    with pytest.raises(ConfigurationError, match="not a directory"):
        validate_options(make_options())


def test_duplicate_handling_needs_checksums(make_options):
    with pytest.raises(ConfigurationError, match="checksums"):
        validate_options(make_options(duplicate_handling=DuplicateHandling.SKIP))

    validate_options(make_options(duplicate_handling=DuplicateHandling.SKIP, calculate_checksums=True))


def test_template_cannot_climb_out(make_options):
    with pytest.raises(ConfigurationError, match=r"'\.\.'"):
        validate_options(make_options(template="../{year}/{name}{ext}"))


def test_duplicates_format_without_separators(make_options):
    with pytest.raises(ConfigurationError, match="separators"):
        validate_options(make_options(duplicates_format="/{number}"))


def test_configuration_error_message_joins_errors():
    err = ConfigurationError(["first", "second"])
    assert str(err) == "first; second"
    assert ConfigurationError("only").errors == ["only"]
