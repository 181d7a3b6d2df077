from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone
from rest_framework.test import APIClient

from escrow.gateways import MockEscrowGateway
from escrow.models import EscrowContract
from projects.models import Crowdfund, Milestone, Project
from projects.serializers import PrepareProjectSerializer
from projects.services import ProjectLifecycleService
from projects.utils import split_goal

User = get_user_model()


@pytest.fixture(autouse=True)
def escrow_settings(settings):
    settings.ESCROW_GATEWAY = {
        **settings.ESCROW_GATEWAY,
        'PROVIDER': 'mock',
        'BASE_URL': 'https://escrow.test',
        'API_KEY': 'test-key',
    }
    settings.CROWDFUNDING = {
        **settings.CROWDFUNDING,
        'VOTE_THRESHOLD': 3,
    }
    return settings


@pytest.fixture
def creator(db):
    return User.objects.create_user('creator@test.com', 'secret', first_name='Ada', last_name='Lovelace')


@pytest.fixture
def backer(db):
    return User.objects.create_user('backer@test.com', 'secret', first_name='Grace', last_name='Hopper')


@pytest.fixture
def admin_user(db):
    return User.objects.create_user('admin@test.com', 'secret', is_staff=True)


@pytest.fixture
def make_voters(db):
    def _make(count):
        return [User.objects.create_user(f'voter{i}@test.com', 'secret') for i in range(count)]
    return _make


@pytest.fixture
def gateway():
    return MockEscrowGateway()


@pytest.fixture
def service(gateway):
    return ProjectLifecycleService(gateway=gateway)


@pytest.fixture
def api_client():
    def _client(user=None):
        client = APIClient()
        if user is not None:
            client.force_authenticate(user=user)
        return client
    return _client


@pytest.fixture
def project_payload():
    now = timezone.now()
    return {
        'title': 'Solar Schools',
        'logo': 'https://cdn.test/logo.png',
        'vision': 'Power every rural school with solar.',
        'category': 'energy',
        'description': 'Panels, batteries and training for 30 schools.',
        'funding_goal': '900.00',
        'contact_primary': '@solar_schools',
        'github_url': 'https://github.com/solar/schools',
        'milestones': [
            {
                'name': f'Phase {i + 1}',
                'description': f'Deliver phase {i + 1}',
                'start_date': (now + timedelta(days=30 * i + 1)).isoformat(),
                'end_date': (now + timedelta(days=30 * (i + 1))).isoformat(),
            }
            for i in range(3)
        ],
        'team': [{'name': 'Linus', 'email': 'linus@test.com', 'role': 'engineer'}],
        'social_links': [{'platform': 'twitter', 'url': 'https://twitter.com/solarschools'}],
        'signer': 'GCREATORWALLETADDRESS',
    }


@pytest.fixture
def validated_payload(project_payload):
    def _validate(**overrides):
        serializer = PrepareProjectSerializer(data={**project_payload, **overrides})
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data
    return _validate


@pytest.fixture
def make_project(creator):
    """Create a persisted project directly, bypassing the two-phase flow."""
    def _make(status=Project.VALIDATED, goal='1000.00', raised='0.00', milestones=3, owner=None, **fields):
        now = timezone.now()
        goal = Decimal(goal)
        project = Project.objects.create(
            creator=owner or creator,
            status=status,
            title=fields.pop('title', 'Clean Water'),
            vision='Clean water for everyone.',
            description='Wells and filters.',
            category=fields.pop('category', 'water'),
            logo='https://cdn.test/water.png',
            contact_primary='@water',
            social_links=[{'platform': 'twitter', 'url': 'https://twitter.com/water'}],
            funding_goal=goal,
            funding_raised=Decimal(raised),
            funding_end_date=fields.pop('funding_end_date', now + timedelta(days=60)),
            voting_start_date=now,
            voting_end_date=fields.pop('voting_end_date', now + timedelta(days=30)),
            **fields,
        )
        for index, amount in enumerate(split_goal(goal, milestones)):
            Milestone.objects.create(
                project=project,
                index=index,
                title=f'Milestone {index}',
                description='Work',
                amount=amount,
                start_date=now + timedelta(days=index * 10),
                due_date=now + timedelta(days=index * 10 + 9),
            )
        EscrowContract.objects.create(
            project=project,
            contract_id=f'CCONTRACT{project.pk}',
            engagement_id=f'crowdfund-{project.pk}',
            transaction_status='success',
            signed_tx_digest=f'{project.pk:064d}',
        )
        Crowdfund.objects.create(
            project=project,
            threshold_votes=3,
            status=Crowdfund.VALIDATED if status != Project.REVIEWING else Crowdfund.UNDER_REVIEW,
        )
        return project
    return _make
