import uuid

from django.db import models
from django.contrib.auth import get_user_model
from django.utils import timezone
from auditlog.registry import auditlog
from auditlog.models import AuditlogHistoryField

from .managers import ProjectManager

User = get_user_model()


class Project(models.Model):
    REVIEWING = 'reviewing'
    IDEA = 'idea'
    VALIDATED = 'validated'
    CAMPAIGNING = 'campaigning'
    LIVE = 'live'
    COMPLETED = 'completed'
    REJECTED = 'rejected'
    CANCELLED = 'cancelled'

    STATUS_CHOICES = (
        (REVIEWING, 'Reviewing'),
        (IDEA, 'Idea'),
        (VALIDATED, 'Validated'),
        (CAMPAIGNING, 'Campaigning'),
        (LIVE, 'Live'),
        (COMPLETED, 'Completed'),
        (REJECTED, 'Rejected'),
        (CANCELLED, 'Cancelled'),
    )

    # statuses in which the creator may still edit or delete the project
    EDITABLE_STATUSES = (REVIEWING, IDEA)
    FUNDABLE_STATUSES = (VALIDATED, CAMPAIGNING, LIVE)
    CANCELLABLE_STATUSES = (REVIEWING, IDEA, VALIDATED, CAMPAIGNING, LIVE)
    PUBLIC_STATUSES = (IDEA, VALIDATED, CAMPAIGNING, LIVE, COMPLETED)

    TYPE_CROWDFUND = 'crowdfund'

    creator = models.ForeignKey(User, related_name='projects', on_delete=models.PROTECT)
    project_type = models.CharField(max_length=20, default=TYPE_CROWDFUND, editable=False)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=REVIEWING, db_index=True)

    title = models.CharField(max_length=255)
    vision = models.TextField()
    description = models.TextField()
    category = models.CharField(max_length=100, db_index=True)
    logo = models.CharField(max_length=500)
    contact_primary = models.CharField(max_length=255)
    contact_backup = models.CharField(max_length=255, blank=True)
    github_url = models.URLField(blank=True)
    gitlab_url = models.URLField(blank=True)
    bitbucket_url = models.URLField(blank=True)
    project_website = models.URLField(blank=True)
    demo_video = models.URLField(blank=True)
    social_links = models.JSONField(default=list, blank=True)

    funding_goal = models.DecimalField(max_digits=18, decimal_places=2)
    funding_raised = models.DecimalField(max_digits=18, decimal_places=2, default=0)
    currency = models.CharField(max_length=10, default='USD')
    funding_end_date = models.DateTimeField(db_index=True)

    # cache of the Vote rows, see projects.voting
    voting_start_date = models.DateTimeField(null=True, blank=True)
    voting_end_date = models.DateTimeField(null=True, blank=True)
    total_votes = models.PositiveIntegerField(default=0)
    positive_votes = models.PositiveIntegerField(default=0)
    negative_votes = models.PositiveIntegerField(default=0)

    reviewed_by = models.ForeignKey(User, related_name='reviewed_projects', on_delete=models.SET_NULL, null=True, blank=True)
    reviewed_at = models.DateTimeField(null=True, blank=True)
    admin_note = models.TextField(blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = AuditlogHistoryField()

    objects = ProjectManager()

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.title} ({self.status})"

    @property
    def remaining_goal(self):
        return max(self.funding_goal - self.funding_raised, 0)

    @property
    def is_funding_open(self):
        return self.funding_end_date is None or timezone.now() <= self.funding_end_date

    @property
    def is_voting_open(self):
        return self.voting_end_date is None or timezone.now() <= self.voting_end_date


class Milestone(models.Model):
    PENDING = 'pending'
    RELEASED = 'released'

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="milestones")
    index = models.PositiveIntegerField()
    title = models.CharField(max_length=255)
    description = models.TextField()
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    start_date = models.DateTimeField()
    due_date = models.DateTimeField()
    status = models.CharField(max_length=20, choices=[
        (PENDING, "Pending"),
        (RELEASED, "Released"),
    ], default=PENDING)
    completed_at = models.DateTimeField(null=True, blank=True)
    release_transaction_hash = models.CharField(max_length=255, null=True, blank=True, unique=True)

    class Meta:
        ordering = ['index']
        unique_together = ['project', 'index']

    def __str__(self):
        return f"{self.project.title} #{self.index}: {self.title}"


class Crowdfund(models.Model):
    """Governance record of a project; its status is audited separately from Project.status."""
    PENDING = 'pending'
    UNDER_REVIEW = 'under_review'
    VALIDATED = 'validated'
    REJECTED = 'rejected'

    STATUS_CHOICES = (
        (PENDING, 'Pending'),
        (UNDER_REVIEW, 'Under Review'),
        (VALIDATED, 'Validated'),
        (REJECTED, 'Rejected'),
    )

    project = models.OneToOneField(Project, on_delete=models.CASCADE, related_name='crowdfund')
    threshold_votes = models.PositiveIntegerField(default=100)
    total_votes = models.PositiveIntegerField(default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=PENDING)
    vote_deadline = models.DateTimeField(null=True, blank=True)
    validated_at = models.DateTimeField(null=True, blank=True)
    rejected_reason = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    history = AuditlogHistoryField()

    def __str__(self):
        return f"Crowdfund for {self.project.title} ({self.status})"


class Vote(models.Model):
    UPVOTE = 1
    DOWNVOTE = -1

    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='votes')
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='votes')
    value = models.SmallIntegerField(choices=[(UPVOTE, 'Upvote'), (DOWNVOTE, 'Downvote')])
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        unique_together = ['project', 'user']


class Contribution(models.Model):
    project = models.ForeignKey(Project, on_delete=models.PROTECT, related_name='contributions')
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name='contributions')
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    date = models.DateTimeField(auto_now_add=True)
    transaction_hash = models.CharField(max_length=255, unique=True)

    class Meta:
        ordering = ['date']

    def __str__(self):
        return f"{self.user} -> {self.project.title}: {self.amount}"


class Activity(models.Model):
    PROJECT_CREATED = 'project_created'
    PROJECT_FUNDED = 'project_funded'
    PROJECT_CANCELLED = 'project_cancelled'

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='activities')
    project = models.ForeignKey(Project, on_delete=models.SET_NULL, null=True, blank=True, related_name='activities')
    activity_type = models.CharField(max_length=30, choices=[
        (PROJECT_CREATED, 'Project Created'),
        (PROJECT_FUNDED, 'Project Funded'),
        (PROJECT_CANCELLED, 'Project Cancelled'),
    ])
    amount = models.DecimalField(max_digits=18, decimal_places=2, null=True, blank=True)
    transaction_hash = models.CharField(max_length=255, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']


class TeamInvitation(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name='invitations')
    invited_by = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sent_invitations')
    email = models.EmailField()
    token = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    status = models.CharField(max_length=20, choices=[
        ("pending", "Pending"),
        ("accepted", "Accepted"),
        ("declined", "Declined"),
    ], default="pending")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['project', 'email']


auditlog.register(Project, include_fields=['status', 'funding_raised', 'reviewed_by', 'admin_note'])
auditlog.register(Crowdfund, include_fields=['status', 'total_votes', 'vote_deadline', 'rejected_reason'])
