from django.conf import settings
from django.db.models import Count, Q

from .models import Vote


def aggregate_votes(project):
    """
    Recompute a project's voting summary from its Vote rows.

    Voters are listed newest first. Nothing is written, so the result only
    depends on the stored votes.
    """
    votes = Vote.objects.filter(project=project).select_related('user').order_by('-created_at', '-id')

    voters = []
    positive = negative = 0
    for vote in votes:
        if vote.value == Vote.UPVOTE:
            positive += 1
            label = 'positive'
        else:
            negative += 1
            label = 'negative'
        voters.append({
            'user_id': vote.user_id,
            'name': vote.user.get_full_name() or vote.user.email,
            'vote': label,
            'voted_at': vote.created_at,
        })

    return {
        'total_votes': positive + negative,
        'positive_votes': positive,
        'negative_votes': negative,
        'voters': voters,
    }


def count_votes(project_id):
    """Counts only, computed in the database."""
    counts = Vote.objects.filter(project_id=project_id).aggregate(
        positive=Count('id', filter=Q(value=Vote.UPVOTE)),
        negative=Count('id', filter=Q(value=Vote.DOWNVOTE)),
    )
    return {
        'total_votes': counts['positive'] + counts['negative'],
        'positive_votes': counts['positive'],
        'negative_votes': counts['negative'],
    }


def vote_passes(total_votes, positive_votes, threshold_votes):
    """A community vote passes once enough votes are in and the positive share is high enough."""
    if total_votes < threshold_votes or total_votes == 0:
        return False
    ratio = settings.CROWDFUNDING['POSITIVE_VOTE_RATIO']
    return positive_votes / total_votes >= ratio
