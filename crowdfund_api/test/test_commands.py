from io import StringIO

import pytest
from django.core.management import call_command

from projects.models import Project, Vote

pytestmark = pytest.mark.django_db


def run_command(*args):
    out = StringIO()
    call_command('check_vote_thresholds', *args, stdout=out)
    return out.getvalue()


def test_opens_campaign_for_passing_votes(make_project, make_voters):
    # setup
    passing = make_project()
    pending = make_project(title='Quiet Project')
    for voter in make_voters(3):
        Vote.objects.create(project=passing, user=voter, value=Vote.UPVOTE)

    # act
    output = run_command()

    # assert
    passing.refresh_from_db()
    pending.refresh_from_db()
    assert passing.status == Project.CAMPAIGNING
    assert passing.total_votes == 3
    assert pending.status == Project.VALIDATED
    assert "Checked 2 validated project(s), 1 passed the community vote." in output


def test_single_project_option(make_project, make_voters):
    target = make_project()
    other = make_project(title='Other')
    for voter in make_voters(3):
        Vote.objects.create(project=other, user=voter, value=Vote.UPVOTE)

    output = run_command('--project', str(target.pk))

    other.refresh_from_db()
    assert other.status == Project.VALIDATED
    assert "Checked 1 validated project(s), 0 passed" in output


def test_ignores_projects_outside_voting(make_project, make_voters):
    project = make_project(status=Project.REVIEWING)
    for voter in make_voters(3):
        Vote.objects.create(project=project, user=voter, value=Vote.UPVOTE)

    output = run_command()

    project.refresh_from_db()
    assert project.status == Project.REVIEWING
    assert "Checked 0 validated project(s)" in output
