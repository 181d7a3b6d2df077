from decimal import Decimal

import pytest

from projects.notifications import NotificationDispatcher

pytestmark = pytest.mark.django_db


@pytest.fixture
def notifier():
    return NotificationDispatcher()


def test_created_notifies_creator_and_admins(notifier, make_project, creator, admin_user, mailoutbox):
    project = make_project(status='reviewing')

    notifier.notify('created', project)

    recipients = sorted(message.to[0] for message in mailoutbox)
    assert recipients == sorted([creator.email, admin_user.email])
    assert all(message.subject.startswith('[Crowdfund]') for message in mailoutbox)
    assert project.title in mailoutbox[0].body


def test_funded_notifies_contributor(notifier, make_project, creator, backer, mailoutbox):
    project = make_project()

    notifier.notify('funded', project, contributor=backer, amount=Decimal('150.00'), transaction_hash='hash-1')

    recipients = [message.to[0] for message in mailoutbox]
    assert recipients == [creator.email, backer.email]
    assert '150.00' in mailoutbox[1].body


def test_inactive_admins_are_skipped(notifier, make_project, admin_user, mailoutbox):
    admin_user.is_active = False
    admin_user.save()

    notifier.notify('fully_funded', make_project())

    assert admin_user.email not in [message.to[0] for message in mailoutbox]


def test_send_failure_is_swallowed(mocker, notifier, make_project, mailoutbox):
    send = mocker.patch('projects.notifications.send_mail', side_effect=OSError("smtp down"))

    notifier.notify('approved', make_project())

    assert send.call_count == 1
    assert len(mailoutbox) == 0


def test_one_bad_recipient_does_not_block_others(mocker, notifier, make_project, creator, admin_user):
    # setup
    send = mocker.patch('projects.notifications.send_mail', side_effect=[OSError("bad address"), 1])

    # act
    notifier.notify('created', make_project(status='reviewing'))

    # assert
    assert send.call_count == 2
    assert send.call_args.kwargs['recipient_list'] == [admin_user.email]


def test_unknown_event_is_swallowed(notifier, make_project, mailoutbox):
    notifier.notify('exploded', make_project())

    assert len(mailoutbox) == 0
