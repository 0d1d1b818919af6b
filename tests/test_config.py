import pytest

from tractcall.config import CallerSettings


def test_default_param_string():
    assert CallerSettings().param_string() == ".F20.L3.R3.M0"


def test_param_string_records_optional_filters():
    s = CallerSettings(
        flank=30,
        min_mapq=20,
        min_read_length=50,
        max_read_length=150,
        exclude_multi=True,
        proper_pairs=True,
        skip_duplicates=True,
        haploid=True,
        error_rate=0.02,
    )
    assert s.param_string() == ".F30.L3.R3.M20.s50.S150.multi.pp.nodup.haploid.e0.02"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"flank": 0},
        {"min_mapq": -1},
        {"min_left_flank": 25},
        {"min_read_length": 200, "max_read_length": 100},
        {"error_rate": 0.0},
        {"error_rate": 1.0},
    ],
)
def test_validate_rejects_bad_values(kwargs):
    with pytest.raises(ValueError):
        CallerSettings(**kwargs).validate()


def test_to_dict_is_json_friendly():
    d = CallerSettings(emit_all=True).to_dict()
    assert d["emit_all"] is True
    assert d["flank"] == 20
    assert d["error_rate"] is None


def test_error_table_and_rate_are_exclusive():
    with pytest.raises(ValueError):
        CallerSettings(error_rate=0.01, error_table="errors.json").validate()
    assert CallerSettings(error_table="/data/errors.json").param_string().endswith(".terrors")
