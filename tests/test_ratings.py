import pytest

from nexus_core.errors import RatingOutOfRangeError
from nexus_core.models import AssistantStats, RatingDistribution
from nexus_core.ratings import fold_rating, round_one_decimal, weighted_mean


def test_four_fives_from_nothing():
    stats = None
    for _ in range(4):
        stats = fold_rating(stats, 5)
    assert stats.users == 4
    assert stats.ratings.five == 4
    assert stats.rating == 5.0


def test_fold_recomputes_mean_from_buckets():
    stats = AssistantStats(
        users=25000,
        rating=4.9,
        ratings=RatingDistribution(five=15000, four=7000, three=2000, two=800, one=200),
    )
    folded = fold_rating(stats, 1)

    assert folded.users == 25001
    assert folded.ratings.one == 201
    assert folded.ratings.five == 15000
    # 110801 / 25001 rounds to 4.4, not the stored headline 4.9
    assert folded.rating == 4.4
    assert stats.ratings.one == 200


def test_mixed_ratings_mean():
    stats = None
    for rating in (5, 4, 4, 2):
        stats = fold_rating(stats, rating)
    assert stats.rating == 3.8


@pytest.mark.parametrize("bad", [0, 6, -1, 3.5, "5", True, None])
def test_out_of_range_ratings_are_rejected(bad):
    with pytest.raises(RatingOutOfRangeError):
        fold_rating(AssistantStats(), bad)


def test_round_half_up():
    assert round_one_decimal(4.25) == 4.3
    assert round_one_decimal(4.35) == 4.4
    assert round_one_decimal(4.24) == 4.2


def test_mean_of_empty_distribution():
    assert weighted_mean(RatingDistribution()) == 0.0
