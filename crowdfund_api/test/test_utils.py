from decimal import Decimal

import pytest
from rest_framework.exceptions import ValidationError

from projects.utils import load_prepared_payload, sign_prepared_payload, signed_tx_digest, split_goal


def test_split_goal_even():
    assert split_goal(Decimal('900'), 3) == [Decimal('300.00')] * 3


def test_split_goal_remainder_goes_to_last_milestone():
    amounts = split_goal(Decimal('1000'), 3)

    assert amounts == [Decimal('333.33'), Decimal('333.33'), Decimal('333.34')]
    assert sum(amounts) == Decimal('1000.00')


def test_split_goal_small_amount():
    amounts = split_goal(Decimal('0.05'), 4)

    assert amounts == [Decimal('0.01'), Decimal('0.01'), Decimal('0.01'), Decimal('0.02')]


def test_split_goal_requires_milestones():
    with pytest.raises(ValueError):
        split_goal(Decimal('100'), 0)


def test_signed_tx_digest_is_stable():
    assert signed_tx_digest('AAAA') == signed_tx_digest('AAAA')
    assert signed_tx_digest('AAAA') != signed_tx_digest('AAAB')
    assert len(signed_tx_digest('AAAA')) == 64


def test_prepared_payload_round_trip():
    token = sign_prepared_payload({'title': 'Solar'}, 7)

    assert load_prepared_payload(token, 7) == {'title': 'Solar'}


def test_prepared_payload_bound_to_creator():
    token = sign_prepared_payload({'title': 'Solar'}, 7)

    with pytest.raises(ValidationError):
        load_prepared_payload(token, 8)


def test_prepared_payload_rejects_tampering():
    token = sign_prepared_payload({'title': 'Solar'}, 7)
    tampered = token[:-2] + ('AA' if not token.endswith('AA') else 'BB')

    with pytest.raises(ValidationError):
        load_prepared_payload(tampered, 7)


def test_prepared_payload_expires(settings):
    token = sign_prepared_payload({'title': 'Solar'}, 7)
    settings.CROWDFUNDING = {**settings.CROWDFUNDING, 'PREPARE_TOKEN_MAX_AGE': -1}

    with pytest.raises(ValidationError) as excinfo:
        load_prepared_payload(token, 7)
    assert 'expired' in str(excinfo.value.detail['prepared_token'])
