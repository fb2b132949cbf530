"""Tests for merge batch splitting."""
import pytest
from conftest import make_record

from mfa.merge.batching import choose_batch_size, split_batches


def test_twenty_records_make_two_batches_of_ten():
    records = [make_record(f"S{i}") for i in range(20)]
    batches = split_batches(records)
    assert [len(b) for b in batches] == [10, 10]
    assert [b.index for b in batches] == [0, 1]


def test_small_dataset_uses_batches_of_five():
    records = [make_record(f"S{i}") for i in range(12)]
    assert [len(b) for b in split_batches(records)] == [5, 5, 2]


def test_threshold_is_exclusive():
    assert choose_batch_size(15) == 5
    assert choose_batch_size(16) == 10


def test_order_preserved_across_batches():
    records = [make_record(f"S{i}") for i in range(7)]
    batches = split_batches(records, size=3)
    flattened = [r for b in batches for r in b.items]
    assert flattened == records


def test_empty_input_has_no_batches():
    assert split_batches([]) == []


def test_invalid_size():
    with pytest.raises(ValueError):
        split_batches([make_record("A")], size=0)
