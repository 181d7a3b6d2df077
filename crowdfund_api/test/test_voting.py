from datetime import timedelta

import pytest
from django.utils import timezone

from projects.models import Vote
from projects.voting import aggregate_votes, count_votes, vote_passes


@pytest.mark.django_db
def test_aggregate_votes_counts(make_project, make_voters):
    # setup
    project = make_project()
    first, second, third = make_voters(3)
    Vote.objects.create(project=project, user=first, value=Vote.UPVOTE)
    Vote.objects.create(project=project, user=second, value=Vote.UPVOTE)
    Vote.objects.create(project=project, user=third, value=Vote.DOWNVOTE)

    # act
    summary = aggregate_votes(project)

    # assert
    assert summary['total_votes'] == 3
    assert summary['positive_votes'] == 2
    assert summary['negative_votes'] == 1
    assert len(summary['voters']) == 3


@pytest.mark.django_db
def test_aggregate_votes_lists_newest_first(make_project, make_voters):
    project = make_project()
    early, late = make_voters(2)
    now = timezone.now()
    Vote.objects.create(project=project, user=late, value=Vote.DOWNVOTE, created_at=now)
    Vote.objects.create(project=project, user=early, value=Vote.UPVOTE, created_at=now - timedelta(days=1))

    voters = aggregate_votes(project)['voters']

    assert [voter['user_id'] for voter in voters] == [late.pk, early.pk]
    assert [voter['vote'] for voter in voters] == ['negative', 'positive']


@pytest.mark.django_db
def test_aggregate_votes_ignores_cached_counters(make_project, make_voters):
    project = make_project(total_votes=40, positive_votes=40)
    (voter,) = make_voters(1)
    Vote.objects.create(project=project, user=voter, value=Vote.UPVOTE)

    first = aggregate_votes(project)
    second = aggregate_votes(project)

    assert first == second
    assert first['total_votes'] == 1
    project.refresh_from_db()
    assert project.total_votes == 40


@pytest.mark.django_db
def test_count_votes_empty(make_project):
    project = make_project()

    assert count_votes(project.pk) == {'total_votes': 0, 'positive_votes': 0, 'negative_votes': 0}


@pytest.mark.parametrize('total, positive, threshold, expected', [
    (3, 2, 3, True),
    (5, 3, 3, True),
    (5, 2, 3, False),
    (2, 2, 3, False),
    (0, 0, 0, False),
])
def test_vote_passes(total, positive, threshold, expected):
    assert vote_passes(total, positive, threshold) is expected
