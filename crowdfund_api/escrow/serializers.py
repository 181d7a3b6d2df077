from rest_framework import serializers

from .models import EscrowContract


class EscrowContractSerializer(serializers.ModelSerializer):
    class Meta:
        model = EscrowContract
        fields = (
            "contract_id",
            "engagement_id",
            "escrow_type",
            "milestones",
            "trustline",
            "transaction_status",
            "transaction_message",
            "creation_tx_hash",
            "created_at",
        )
        read_only_fields = fields
