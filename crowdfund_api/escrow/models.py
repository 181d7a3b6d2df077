from django.db import models
from django.contrib.auth import get_user_model
from django.core.serializers.json import DjangoJSONEncoder


from projects.models import Project

User = get_user_model()


class EscrowContract(models.Model):
    """On-ledger multi-release escrow linked to a project. Created only after a successful submission."""
    project = models.OneToOneField(Project, on_delete=models.CASCADE, related_name='escrow')
    contract_id = models.CharField(max_length=255, unique=True)
    engagement_id = models.CharField(max_length=255, blank=True)
    escrow_type = models.CharField(max_length=20, default='multi')
    milestones = models.JSONField(default=list, blank=True)
    trustline = models.JSONField(default=dict, blank=True)
    transaction_status = models.CharField(max_length=50, blank=True)
    transaction_message = models.TextField(blank=True)
    creation_tx_hash = models.CharField(max_length=255, blank=True)
    signed_tx_digest = models.CharField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def __str__(self):
        return f"Escrow {self.contract_id} for {self.project.title}"


class ReconciliationItem(models.Model):
    """
    A ledger transaction that succeeded remotely while the local write following it failed.
    Local and remote state diverge until an operator resolves the item.
    """
    PROJECT_CREATION = 'project_creation'
    FUNDING = 'funding'
    MILESTONE_RELEASE = 'milestone_release'

    KIND_CHOICES = (
        (PROJECT_CREATION, 'Project Creation'),
        (FUNDING, 'Funding'),
        (MILESTONE_RELEASE, 'Milestone Release'),
    )

    kind = models.CharField(max_length=30, choices=KIND_CHOICES)
    project = models.ForeignKey(Project, on_delete=models.SET_NULL, null=True, blank=True, related_name='reconciliation_items')
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, blank=True, related_name='reconciliation_items')
    contract_id = models.CharField(max_length=255, blank=True)
    signed_tx_digest = models.CharField(max_length=64, blank=True)
    transaction_hash = models.CharField(max_length=255, blank=True)
    payload = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    error = models.TextField()
    resolved = models.BooleanField(default=False)
    resolved_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.kind} {self.contract_id or self.transaction_hash} ({'resolved' if self.resolved else 'open'})"
