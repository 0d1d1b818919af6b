import json
from pathlib import Path

import pytest

from tractcall.config import CallerSettings
from tractcall.error_model import ErrorRateTable
from tractcall.runner import load_error_table


def _table_data(cell):
    return [[[list(cell) for _ in range(5)] for _ in range(5)] for _ in range(5)]


def test_table_loads_from_json(tmp_path: Path):
    path = tmp_path / "errors.json"
    data = _table_data((900, 100))
    data[1][0][0] = [995, 5]
    path.write_text(json.dumps({"counts": data}))
    table = ErrorRateTable.from_json(path)
    assert table.lookup(2, 10, 0.9999) == (995, 5)
    assert table.lookup(3, 60, 0.5) == (900, 100)

    bare = tmp_path / "bare.json"
    bare.write_text(json.dumps(data))
    assert ErrorRateTable.from_json(bare) == table


@pytest.mark.parametrize(
    "payload",
    [
        {"counts": _table_data((900, 100))[:4]},
        {"other": []},
        _table_data((900, -1)),
        _table_data((0, 0)),
        _table_data((900,)),
    ],
)
def test_malformed_tables_are_rejected(tmp_path: Path, payload):
    path = tmp_path / "errors.json"
    path.write_text(json.dumps(payload))
    with pytest.raises(ValueError):
        ErrorRateTable.from_json(path)


def test_settings_choose_the_table(tmp_path: Path):
    path = tmp_path / "flat.json"
    path.write_text(json.dumps(_table_data((800, 200))))
    assert load_error_table(CallerSettings()) == ErrorRateTable.default()
    assert load_error_table(CallerSettings(error_rate=0.05)).lookup(1, 10, 1.0) == (950, 50)
    assert load_error_table(CallerSettings(error_table=str(path))).lookup(1, 10, 1.0) == (800, 200)
