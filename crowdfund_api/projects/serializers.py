from decimal import Decimal

from rest_framework import serializers
from django.contrib.auth import get_user_model
from django.utils import timezone

from escrow.serializers import EscrowContractSerializer
from .models import Project, Milestone, Crowdfund, Contribution, Vote
from .voting import aggregate_votes


User = get_user_model()


class UserSummarySerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ['id', 'first_name', 'last_name', 'email']


class MilestoneInputSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    description = serializers.CharField()
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()

    def validate(self, attrs):
        if attrs['start_date'] >= attrs['end_date']:
            raise serializers.ValidationError("Milestone start date must be before its end date.")
        return attrs


class TeamMemberSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255, required=False, allow_blank=True)
    email = serializers.EmailField()
    role = serializers.CharField(max_length=100, required=False, allow_blank=True)


class SocialLinkSerializer(serializers.Serializer):
    platform = serializers.CharField(max_length=50)
    url = serializers.URLField()


class PrepareProjectSerializer(serializers.Serializer):
    """
    Input for step one of project creation.

    The funding goal is split equally across milestones; their date ranges may touch
    but must not overlap.
    """
    title = serializers.CharField(max_length=255)
    logo = serializers.CharField(max_length=500)
    vision = serializers.CharField()
    category = serializers.CharField(max_length=100)
    description = serializers.CharField()
    funding_goal = serializers.DecimalField(max_digits=18, decimal_places=2)
    funding_end_date = serializers.DateTimeField(required=False)
    contact_primary = serializers.CharField(max_length=255)
    contact_backup = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    github_url = serializers.URLField(required=False, allow_blank=True, default='')
    gitlab_url = serializers.URLField(required=False, allow_blank=True, default='')
    bitbucket_url = serializers.URLField(required=False, allow_blank=True, default='')
    project_website = serializers.URLField(required=False, allow_blank=True, default='')
    demo_video = serializers.URLField(required=False, allow_blank=True, default='')
    milestones = MilestoneInputSerializer(many=True, allow_empty=False)
    team = TeamMemberSerializer(many=True, allow_empty=False)
    social_links = SocialLinkSerializer(many=True, allow_empty=False)
    signer = serializers.CharField(max_length=255)

    def validate_funding_goal(self, value):
        if value <= 0:
            raise serializers.ValidationError("Funding goal must be greater than zero.")
        return value

    def validate_funding_end_date(self, value):
        if value <= timezone.now():
            raise serializers.ValidationError("Funding end date must be in the future.")
        return value

    def validate_milestones(self, value):
        ordered = sorted(value, key=lambda milestone: milestone['start_date'])
        for previous, current in zip(ordered, ordered[1:]):
            if current['start_date'] < previous['end_date']:
                raise serializers.ValidationError(
                    f"Milestones '{previous['name']}' and '{current['name']}' overlap."
                )
        return value

    def validate_signer(self, value):
        if not value.strip():
            raise serializers.ValidationError("Signer address is required.")
        return value.strip()


class ConfirmProjectSerializer(serializers.Serializer):
    signed_transaction = serializers.CharField()
    prepared_token = serializers.CharField()


class ReviewProjectSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=['approve', 'reject'])
    note = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, attrs):
        if attrs['action'] == 'reject' and not attrs['note'].strip():
            raise serializers.ValidationError({'note': "A reason is required to reject a project."})
        return attrs


class FundPrepareSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=18, decimal_places=2, min_value=Decimal('0.01'))
    signer = serializers.CharField(max_length=255)


class FundConfirmSerializer(serializers.Serializer):
    signed_transaction = serializers.CharField()
    amount = serializers.DecimalField(max_digits=18, decimal_places=2, min_value=Decimal('0.01'))
    transaction_hash = serializers.CharField(max_length=255)


class VoteSerializer(serializers.Serializer):
    value = serializers.ChoiceField(choices=[(Vote.UPVOTE, 'Upvote'), (Vote.DOWNVOTE, 'Downvote')])


class CancelProjectSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class MilestoneReleasePrepareSerializer(serializers.Serializer):
    signer = serializers.CharField(max_length=255)


class MilestoneReleaseConfirmSerializer(serializers.Serializer):
    signed_transaction = serializers.CharField()
    transaction_hash = serializers.CharField(max_length=255)


class ProjectUpdateSerializer(serializers.ModelSerializer):
    """Descriptive fields a creator may change while the project awaits review."""
    social_links = SocialLinkSerializer(many=True, required=False, allow_empty=False)

    class Meta:
        model = Project
        fields = [
            'title', 'vision', 'description', 'category', 'logo',
            'contact_primary', 'contact_backup',
            'github_url', 'gitlab_url', 'bitbucket_url', 'project_website', 'demo_video',
            'social_links',
        ]

    def to_internal_value(self, data):
        attrs = super().to_internal_value(data)
        if 'social_links' in attrs:
            attrs['social_links'] = [dict(link) for link in attrs['social_links']]
        return attrs


class MilestoneSerializer(serializers.ModelSerializer):
    class Meta:
        model = Milestone
        fields = ['index', 'title', 'description', 'amount', 'start_date', 'due_date', 'status', 'completed_at', 'release_transaction_hash']


class CrowdfundSerializer(serializers.ModelSerializer):
    class Meta:
        model = Crowdfund
        fields = ['threshold_votes', 'total_votes', 'status', 'vote_deadline', 'validated_at', 'rejected_reason']


class ContributionSerializer(serializers.ModelSerializer):
    user = UserSummarySerializer(read_only=True)

    class Meta:
        model = Contribution
        fields = ['user', 'amount', 'date', 'transaction_hash']


class ProjectListSerializer(serializers.ModelSerializer):
    creator = UserSummarySerializer(read_only=True)

    class Meta:
        model = Project
        fields = [
            'id', 'creator', 'title', 'vision', 'category', 'logo', 'status',
            'funding_goal', 'funding_raised', 'currency', 'funding_end_date',
            'total_votes', 'created_at',
        ]


class ProjectDetailSerializer(serializers.ModelSerializer):
    """
    Full project view. The voting block is recomputed from Vote rows on every read,
    the cached counters on Project are not trusted here.
    """
    creator = UserSummarySerializer(read_only=True)
    funding = serializers.SerializerMethodField()
    voting = serializers.SerializerMethodField()
    milestones = MilestoneSerializer(many=True, read_only=True)
    crowdfund = CrowdfundSerializer(read_only=True)
    escrow = serializers.SerializerMethodField()

    class Meta:
        model = Project
        fields = [
            'id', 'creator', 'project_type', 'status',
            'title', 'vision', 'description', 'category', 'logo',
            'contact_primary', 'contact_backup',
            'github_url', 'gitlab_url', 'bitbucket_url', 'project_website', 'demo_video', 'social_links',
            'funding', 'voting', 'milestones', 'crowdfund', 'escrow',
            'reviewed_at', 'admin_note', 'cancelled_at', 'cancellation_reason',
            'created_at', 'updated_at',
        ]

    def get_funding(self, obj):
        return {
            'goal': obj.funding_goal,
            'raised': obj.funding_raised,
            'remaining': obj.remaining_goal,
            'currency': obj.currency,
            'end_date': obj.funding_end_date,
            'contributors': ContributionSerializer(obj.contributions.all(), many=True).data,
        }

    def get_voting(self, obj):
        return {
            'start_date': obj.voting_start_date,
            'end_date': obj.voting_end_date,
            **aggregate_votes(obj),
        }

    def get_escrow(self, obj):
        escrow = getattr(obj, 'escrow', None)
        return EscrowContractSerializer(escrow).data if escrow else None
