from unittest import mock

import pytest

from colmena.limits import (
    EvaluationNodeLimit,
    LimitKind,
    ParallelismLimit,
    parse_evaluation_node_limit,
)

MIB = 1024 * 1024


def test_parse_auto():
    limit = parse_evaluation_node_limit("auto")
    assert limit.kind is LimitKind.HEURISTIC
    assert limit == EvaluationNodeLimit()


def test_parse_zero_means_no_limit():
    limit = parse_evaluation_node_limit("0")
    assert limit.kind is LimitKind.NONE
    assert limit.get_limit() is None


def test_parse_manual():
    limit = parse_evaluation_node_limit("7")
    assert limit.kind is LimitKind.MANUAL
    assert limit.get_limit() == 7


@pytest.mark.parametrize("text", ["auto", "0", "3", "25"])
def test_display_round_trip(text):
    assert str(parse_evaluation_node_limit(text)) == text


@pytest.mark.parametrize("bad", ["", "-1", "many", "1.5", "Auto"])
def test_parse_rejects(bad):
    with pytest.raises(ValueError, match="valid number or `auto`"):
        parse_evaluation_node_limit(bad)


def test_heuristic_with_plenty_of_memory():
    fake = mock.Mock(available=4096 * MIB)
    with mock.patch("colmena.limits.psutil.virtual_memory", return_value=fake):
        assert EvaluationNodeLimit().get_limit() == 6


def test_heuristic_never_below_one():
    fake = mock.Mock(available=100 * MIB)
    with mock.patch("colmena.limits.psutil.virtual_memory", return_value=fake):
        assert EvaluationNodeLimit().get_limit() == 1


def test_heuristic_grows_with_memory():
    results = []
    for mb in (2048, 8192, 32768):
        fake = mock.Mock(available=mb * MIB)
        with mock.patch("colmena.limits.psutil.virtual_memory", return_value=fake):
            results.append(EvaluationNodeLimit().get_limit())
    assert results == sorted(results)
    assert results[0] < results[-1]


def test_heuristic_falls_back_when_memory_unknown():
    with mock.patch("colmena.limits.psutil.virtual_memory", side_effect=OSError):
        assert EvaluationNodeLimit().get_limit() == 10


@pytest.mark.asyncio
async def test_parallelism_defaults():
    limit = ParallelismLimit()
    assert limit.evaluation_limit == 1
    assert limit.apply_limit == 10
    await limit.evaluation.acquire()
    assert limit.evaluation.locked()


@pytest.mark.asyncio
async def test_set_apply_limit():
    limit = ParallelismLimit()
    limit.set_apply_limit(3)
    assert limit.apply_limit == 3
    for _ in range(3):
        assert not limit.apply.locked()
        await limit.apply.acquire()
    assert limit.apply.locked()