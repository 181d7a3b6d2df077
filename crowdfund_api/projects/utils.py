import hashlib
from decimal import Decimal, ROUND_DOWN

from django.conf import settings
from django.core import signing
from rest_framework import serializers

CENT = Decimal('0.01')
PREPARE_TOKEN_SALT = 'crowdfunding.prepare'


def split_goal(goal, count):
    """
    Split a funding goal equally across ``count`` milestones.

    Each share is rounded down to cents and the remainder goes to the last
    milestone, so the shares always sum to the goal exactly.
    """
    if count < 1:
        raise ValueError("At least one milestone is required")
    goal = Decimal(str(goal)).quantize(CENT)
    share = (goal / count).quantize(CENT, rounding=ROUND_DOWN)
    amounts = [share] * count
    amounts[-1] = goal - share * (count - 1)
    return amounts


def signed_tx_digest(signed_transaction):
    return hashlib.sha256(signed_transaction.encode()).hexdigest()


def sign_prepared_payload(payload, creator_id):
    return signing.dumps(
        {'creator': creator_id, 'payload': payload},
        salt=PREPARE_TOKEN_SALT,
        compress=True,
    )


def load_prepared_payload(token, creator_id):
    """Return the prepared project payload carried by ``token`` or raise a ValidationError."""
    max_age = settings.CROWDFUNDING['PREPARE_TOKEN_MAX_AGE']
    try:
        data = signing.loads(token, salt=PREPARE_TOKEN_SALT, max_age=max_age)
    except signing.SignatureExpired:
        raise serializers.ValidationError({'prepared_token': "The prepared project has expired. Prepare it again."})
    except signing.BadSignature:
        raise serializers.ValidationError({'prepared_token': "Invalid prepared project token."})

    if data.get('creator') != creator_id:
        raise serializers.ValidationError({'prepared_token': "This prepared project belongs to another user."})
    return data['payload']
