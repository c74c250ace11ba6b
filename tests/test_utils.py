from __future__ import annotations

import pytest

from sheet_records.utils import column_label, utcnow_iso


@pytest.mark.parametrize(
    ("index", "label"),
    [(1, "A"), (2, "B"), (26, "Z"), (27, "AA"), (28, "AB"), (52, "AZ"), (53, "BA"),
     (78, "BZ"), (676, "YZ"), (677, "ZA"), (702, "ZZ"), (703, "AAA")],
)
def test_column_label_boundaries(index: int, label: str) -> None:
    assert column_label(index) == label


def test_column_label_is_injective_and_ordered() -> None:
    labels = [column_label(n) for n in range(1, 703)]

    assert len(set(labels)) == len(labels)
    assert labels == sorted(labels, key=lambda label: (len(label), label))


def test_column_label_rejects_invalid_indices() -> None:
    with pytest.raises(ValueError):
        column_label(0)
    with pytest.raises(TypeError):
        column_label(True)
    with pytest.raises(TypeError):
        column_label(1.5)  # type: ignore[arg-type]


def test_utcnow_iso_is_timezone_aware() -> None:
    assert utcnow_iso().endswith("+00:00")
