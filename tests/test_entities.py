from __future__ import annotations

import numpy as np
import pandas as pd
import pytest

from src.rtte.entities import (
    COMPARTMENTS,
    TRAJECTORY_HEADER,
    TrajectoryRecord,
    compartment_index,
    initial_state,
)
from src.rtte.errors import ConfigurationError


def _record() -> TrajectoryRecord:
    time = np.array([0.0, 1.0, 2.0])
    amounts = np.zeros((3, len(COMPARTMENTS)))
    amounts[:, compartment_index("CENT")] = [10.0, 5.0, 2.5]
    amounts[:, compartment_index("CHAZARD")] = [0.0, 0.1, 0.2]
    return TrajectoryRecord(
        time=time,
        amounts=amounts,
        concentration=amounts[:, compartment_index("CENT")] / 10.0,
        hazard=np.full(3, 0.1),
        cumulative_hazard=amounts[:, compartment_index("CHAZARD")],
        provenance={"subject_id": "7"},
    )


def test_initial_state_defaults_and_validation() -> None:
    state = initial_state({"EV1": 3.0})
    assert state.tolist() == [3.0, 0.0, 0.0, 0.0, 0.0]
    with pytest.raises(ConfigurationError):
        initial_state({"CENT": -1.0})
    with pytest.raises(ConfigurationError):
        initial_state({"GUT": 1.0})
    with pytest.raises(ConfigurationError):
        initial_state({"CHAZARD": float("nan")})


def test_trajectory_frame_columns_and_metadata() -> None:
    record = _record()
    frame = record.to_frame()
    assert tuple(frame.columns) == TRAJECTORY_HEADER
    assert frame["CP"].tolist() == [1.0, 0.5, 0.25]
    assert frame.attrs["provenance"] == {"subject_id": "7"}
    assert record.amount("CENT").tolist() == [10.0, 5.0, 2.5]


def test_trajectory_csv_round_trips_values(tmp_path) -> None:
    path = tmp_path / "out" / "trajectory.csv"
    _record().save_csv(path)
    frame = pd.read_csv(path)
    assert list(frame.columns) == list(TRAJECTORY_HEADER)
    assert frame["CHAZARD"].tolist() == pytest.approx([0.0, 0.1, 0.2])
