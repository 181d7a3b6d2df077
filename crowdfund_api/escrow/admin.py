from django.contrib import admin
from django.utils import timezone
from .models import EscrowContract, ReconciliationItem


@admin.register(EscrowContract)
class EscrowContractAdmin(admin.ModelAdmin):
    list_display = ('id', 'project', 'contract_id', 'escrow_type', 'transaction_status', 'created_at')
    list_filter = ('escrow_type', 'transaction_status')
    search_fields = ('contract_id', 'engagement_id', 'project__title')


@admin.register(ReconciliationItem)
class ReconciliationItemAdmin(admin.ModelAdmin):
    list_display = ('id', 'kind', 'project', 'user', 'contract_id', 'transaction_hash', 'resolved', 'created_at')
    list_filter = ('kind', 'resolved')
    search_fields = ('contract_id', 'transaction_hash', 'signed_tx_digest', 'user__email')
    actions = ['mark_resolved']

    @admin.action(description="Mark selected items as resolved")
    def mark_resolved(self, request, queryset):
        queryset.filter(resolved=False).update(resolved=True, resolved_at=timezone.now())
