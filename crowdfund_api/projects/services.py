import logging
import uuid
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from crowdfund_api.exceptions import (
    ConflictError,
    ExternalServiceError,
    InvalidStateTransition,
    ReconciliationRequired,
)
from escrow.gateways import EscrowGatewayError, get_escrow_gateway
from escrow.models import EscrowContract, ReconciliationItem

from .models import Activity, Contribution, Crowdfund, Milestone, Project, TeamInvitation, Vote
from .notifications import dispatcher as default_dispatcher
from .utils import CENT, load_prepared_payload, sign_prepared_payload, signed_tx_digest, split_goal
from .voting import count_votes, vote_passes

logger = logging.getLogger(__name__)
reconciliation_logger = logging.getLogger('reconciliation')

User = get_user_model()

# descriptive fields a creator provides and may edit before review
DESCRIPTIVE_FIELDS = (
    'title', 'vision', 'description', 'category', 'logo',
    'contact_primary', 'contact_backup',
    'github_url', 'gitlab_url', 'bitbucket_url', 'project_website', 'demo_video',
    'social_links',
)


class ProjectLifecycleService:
    """
    Drives a crowdfunding project through its lifecycle:
    create (prepare/confirm) -> review -> vote -> funding (prepare/confirm) -> milestone release.

    Ledger submissions always complete before the local transaction that records them.
    If that transaction fails afterwards, a ReconciliationItem is written and
    ReconciliationRequired is raised. Notifications and activity records are
    written after commit and never fail the operation.
    """

    def __init__(self, gateway=None, dispatcher=None):
        self._gateway = gateway
        self.dispatcher = dispatcher or default_dispatcher

    @property
    def gateway(self):
        if self._gateway is None:
            self._gateway = get_escrow_gateway()
        return self._gateway

    # Creation

    def prepare_create(self, creator, data):
        """
        Build the escrow deployment for a new project and return the unsigned
        transaction with the prepared project. Nothing is persisted.

        ``data`` is the validated output of PrepareProjectSerializer.
        """
        signer = (data.get('signer') or '').strip()
        if not signer:
            raise ValidationError({'signer': "Signer address is required."})

        goal = Decimal(str(data['funding_goal'])).quantize(CENT)
        milestones = data['milestones']
        amounts = split_goal(goal, len(milestones))
        config = settings.CROWDFUNDING
        funding_end_date = data.get('funding_end_date') or timezone.now() + timedelta(days=config['FUNDING_PERIOD_DAYS'])

        payload = {field: data.get(field, '') for field in DESCRIPTIVE_FIELDS}
        payload['social_links'] = [dict(link) for link in data['social_links']]
        payload.update({
            'engagement_id': f"crowdfund-{uuid.uuid4().hex}",
            'signer': signer,
            'funding_goal': str(goal),
            'currency': config['CURRENCY'],
            'funding_end_date': funding_end_date.isoformat(),
            'milestones': [
                {
                    'index': index,
                    'title': milestone['name'],
                    'description': milestone['description'],
                    'amount': str(amount),
                    'start_date': milestone['start_date'].isoformat(),
                    'due_date': milestone['end_date'].isoformat(),
                }
                for index, (milestone, amount) in enumerate(zip(milestones, amounts))
            ],
            'team': [
                {'name': member.get('name', ''), 'email': member['email'], 'role': member.get('role', '')}
                for member in data['team']
            ],
        })

        result = self._call_gateway('deploy_escrow', self._escrow_spec(payload))
        logger.info(f"Prepared project '{payload['title']}' for user {creator.pk}, engagement {payload['engagement_id']}")

        return {
            'unsigned_transaction': result['unsigned_transaction'],
            'prepared_token': sign_prepared_payload(payload, creator.pk),
            'project': payload,
            'milestone_amount': str(amounts[0]),
        }

    def _escrow_spec(self, payload):
        gateway_config = settings.ESCROW_GATEWAY
        signer = payload['signer']
        # roles left unconfigured fall back to the creator's wallet
        roles = {role: address or signer for role, address in gateway_config['ROLES'].items()}
        return {
            'signer': signer,
            'engagement_id': payload['engagement_id'],
            'title': f"Crowdfunding Project: {payload['title']}",
            'description': f"Escrow for crowdfunding project {payload['title']}",
            'roles': roles,
            'platform_fee': gateway_config['PLATFORM_FEE'],
            'trustline': {
                'address': gateway_config['TRUSTLINE_ADDRESS'],
                'decimals': gateway_config['TRUSTLINE_DECIMALS'],
            },
            'milestones': [
                {'description': milestone['description'], 'amount': milestone['amount']}
                for milestone in payload['milestones']
            ],
        }

    def confirm_create(self, creator, signed_transaction, prepared_token, meta=None):
        signed_transaction = self._clean_signed(signed_transaction)
        digest = signed_tx_digest(signed_transaction)

        # a replayed transaction is a conflict even when its token has since expired
        if EscrowContract.objects.filter(signed_tx_digest=digest).exists():
            raise ConflictError("This signed transaction has already been used to create a project.")
        payload = load_prepared_payload(prepared_token, creator.pk)

        tx = self._submit(signed_transaction)

        try:
            with transaction.atomic():
                project = self._persist_project(creator, payload, tx, digest)
        except Exception as e:
            self._reconcile(
                ReconciliationItem.PROJECT_CREATION,
                e,
                user=creator,
                contract_id=tx.get('contract_id') or '',
                signed_tx_digest=digest,
                transaction_hash=tx.get('hash') or '',
                payload={'project': payload, 'transaction': tx},
            )

        logger.info(f"Project {project.pk} created by user {creator.pk}. Contract: {project.escrow.contract_id}")

        self._record_activity(creator, project, Activity.PROJECT_CREATED, meta, transaction_hash=tx.get('hash') or '')
        invitations = self._invite_team(project, creator, payload.get('team', []))
        self.dispatcher.notify('created', project)
        if invitations:
            self.dispatcher.notify('team_invitation', project, invitations=invitations)

        return project, tx

    def _persist_project(self, creator, payload, tx, digest):
        project = Project.objects.create(
            creator=creator,
            status=Project.REVIEWING,
            funding_goal=Decimal(payload['funding_goal']),
            currency=payload['currency'],
            funding_end_date=parse_datetime(payload['funding_end_date']),
            **{field: payload[field] for field in DESCRIPTIVE_FIELDS},
        )
        Milestone.objects.bulk_create([
            Milestone(
                project=project,
                index=milestone['index'],
                title=milestone['title'],
                description=milestone['description'],
                amount=Decimal(milestone['amount']),
                start_date=parse_datetime(milestone['start_date']),
                due_date=parse_datetime(milestone['due_date']),
            )
            for milestone in payload['milestones']
        ])

        escrow = tx.get('escrow') or {}
        EscrowContract.objects.create(
            project=project,
            contract_id=tx['contract_id'],
            engagement_id=escrow.get('engagementId') or payload['engagement_id'],
            escrow_type='multi',
            milestones=escrow.get('milestones') or [
                {'description': m['description'], 'amount': m['amount']} for m in payload['milestones']
            ],
            trustline=escrow.get('trustline') or {'address': settings.ESCROW_GATEWAY['TRUSTLINE_ADDRESS']},
            transaction_status=tx.get('status') or '',
            transaction_message=tx.get('message') or '',
            creation_tx_hash=tx.get('hash') or '',
            signed_tx_digest=digest,
        )
        Crowdfund.objects.create(
            project=project,
            threshold_votes=settings.CROWDFUNDING['VOTE_THRESHOLD'],
            status=Crowdfund.UNDER_REVIEW,
        )
        User.objects.increment_stats(creator.pk, projects_created=1)
        return project

    def _invite_team(self, project, creator, team):
        invitations = []
        for member in team:
            email = member['email'].strip().lower()
            if email == creator.email.lower():
                continue
            try:
                invitation, created = TeamInvitation.objects.get_or_create(
                    project=project,
                    email=email,
                    defaults={'invited_by': creator},
                )
            except Exception:
                logger.exception(f"Failed to create team invitation for {email} on project {project.pk}")
                continue
            if created:
                invitations.append(invitation)
        return invitations

    # Review

    def review(self, project, admin, action, note=''):
        self._require_admin(admin)
        note = (note or '').strip()
        if action not in ('approve', 'reject'):
            raise ValidationError({'action': "Action must be 'approve' or 'reject'."})
        if action == 'reject' and not note:
            raise ValidationError({'note': "A reason is required to reject a project."})

        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            if project.status != Project.REVIEWING:
                raise InvalidStateTransition(f"Only projects under review can be reviewed (current status: {project.status}).")
            crowdfund = Crowdfund.objects.select_for_update().get(project=project)

            now = timezone.now()
            if action == 'approve':
                deadline = now + timedelta(days=settings.CROWDFUNDING['VOTING_PERIOD_DAYS'])
                project.status = Project.VALIDATED
                project.voting_start_date = now
                project.voting_end_date = deadline
                crowdfund.status = Crowdfund.VALIDATED
                crowdfund.vote_deadline = deadline
                crowdfund.validated_at = now
            else:
                project.status = Project.REJECTED
                crowdfund.status = Crowdfund.REJECTED
                crowdfund.rejected_reason = note

            project.reviewed_by = admin
            project.reviewed_at = now
            project.admin_note = note
            project.save()
            crowdfund.save()

        logger.info(f"Project {project.pk} {action}d by admin {admin.pk}")
        self.dispatcher.notify('approved' if action == 'approve' else 'rejected', project, note=note)
        return project

    # Funding

    def prepare_funding(self, project, user, amount, signer):
        amount = self._clean_amount(amount)
        signer = (signer or '').strip()
        if not signer:
            raise ValidationError({'signer': "Signer address is required."})
        self._check_fundable(project)
        contract_id = self._contract_id(project)

        result = self._call_gateway('fund_escrow', contract_id, amount, signer)
        logger.info(f"Prepared funding of {amount} for project {project.pk} by user {user.pk}")

        return {
            'unsigned_transaction': result['unsigned_transaction'],
            'contract_id': contract_id,
            'amount': amount,
            'project_id': project.pk,
            'project_title': project.title,
            'current_raised': project.funding_raised,
            'funding_goal': project.funding_goal,
            'remaining_goal': project.remaining_goal,
        }

    def confirm_funding(self, project, user, signed_transaction, amount, transaction_hash, meta=None):
        amount = self._clean_amount(amount)
        transaction_hash = (transaction_hash or '').strip()
        if not transaction_hash:
            raise ValidationError({'transaction_hash': "Transaction hash is required."})
        signed_transaction = self._clean_signed(signed_transaction)

        # checked before the status so a retry after the final contribution still conflicts
        self._ensure_new_contribution_hash(transaction_hash)
        self._check_fundable(project)
        contract_id = self._contract_id(project)

        tx = self._submit(signed_transaction)

        try:
            with transaction.atomic():
                locked = Project.objects.locked(project.pk)
                # already-completed projects still record a ledger-accepted overshoot
                if locked.status not in Project.FUNDABLE_STATUSES + (Project.COMPLETED,):
                    raise InvalidStateTransition(f"Project can no longer record funding (status: {locked.status}).")

                Project.objects.increment_raised(locked.pk, amount)
                contribution = Contribution.objects.create(
                    project=locked,
                    user=user,
                    amount=amount,
                    transaction_hash=transaction_hash,
                )
                User.objects.increment_stats(user.pk, total_contributed=amount)
                User.objects.increment_stats(locked.creator_id, total_raised=amount)
                completed = Project.objects.complete_if_goal_reached(locked.pk)
        except Exception as e:
            # a concurrent confirm recorded the same hash first
            if isinstance(e, IntegrityError) and Contribution.objects.filter(transaction_hash=transaction_hash).exists():
                logger.warning(f"Transaction {transaction_hash} for project {project.pk} was recorded by a concurrent request")
                raise ConflictError("This transaction hash has already been recorded.") from e
            self._reconcile(
                ReconciliationItem.FUNDING,
                e,
                project=project,
                user=user,
                contract_id=contract_id,
                signed_tx_digest=signed_tx_digest(signed_transaction),
                transaction_hash=transaction_hash,
                payload={'amount': amount, 'transaction': tx},
            )

        project.refresh_from_db()
        logger.info(f"Recorded contribution of {amount} to project {project.pk} (raised {project.funding_raised}/{project.funding_goal})")

        self._record_activity(user, project, Activity.PROJECT_FUNDED, meta, amount=amount, transaction_hash=transaction_hash)
        self.dispatcher.notify('funded', project, contributor=user, amount=amount, transaction_hash=transaction_hash)
        if completed:
            self.dispatcher.notify('fully_funded', project)

        return {
            'project': project,
            'contribution': contribution,
            'transaction': tx,
            'is_fully_funded': project.funding_raised >= project.funding_goal,
            'completed': completed,
        }

    def _ensure_new_contribution_hash(self, transaction_hash):
        if Contribution.objects.filter(transaction_hash=transaction_hash).exists():
            raise ConflictError("This transaction hash has already been recorded.")

    def _check_fundable(self, project):
        if project.status not in Project.FUNDABLE_STATUSES:
            raise InvalidStateTransition(f"Project is not currently accepting funding (status: {project.status}).")
        if not project.is_funding_open:
            raise InvalidStateTransition("The funding period for this project has ended.")
        if project.funding_raised >= project.funding_goal:
            raise InvalidStateTransition("Project has already reached its funding goal.")

    # Creator edits

    def update(self, project, user, data):
        self._require_owner(project, user)
        unknown = set(data) - set(DESCRIPTIVE_FIELDS)
        if unknown:
            raise ValidationError({field: "This field cannot be updated." for field in sorted(unknown)})

        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            self._require_editable(project)
            changes = [field for field, value in data.items() if getattr(project, field) != value]
            for field in changes:
                setattr(project, field, data[field])
            if changes:
                project.save(update_fields=changes + ['updated_at'])

        if changes:
            self.dispatcher.notify('updated', project, changes=changes)
        return project, changes

    def delete(self, project, user):
        self._require_owner(project, user)

        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            self._require_editable(project)
            project_id = project.pk
            Crowdfund.objects.filter(project=project).delete()
            User.objects.increment_stats(project.creator_id, projects_created=-1)
            project.delete()

        logger.info(f"Project {project_id} deleted by user {user.pk}")
        self.dispatcher.notify('deleted', project)

    def cancel(self, project, user, reason='', meta=None):
        if not (user.is_staff or project.creator_id == user.pk):
            raise PermissionDenied("Only the project owner or an admin can cancel this project.")

        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            if project.status not in Project.CANCELLABLE_STATUSES:
                raise InvalidStateTransition(f"Project cannot be cancelled (status: {project.status}).")
            if project.funding_raised > 0:
                raise InvalidStateTransition("Project cannot be cancelled once funds have been raised.")
            project.status = Project.CANCELLED
            project.cancelled_at = timezone.now()
            project.cancellation_reason = (reason or '').strip()
            project.save()

        logger.info(f"Project {project.pk} cancelled by user {user.pk}")
        self._record_activity(user, project, Activity.PROJECT_CANCELLED, meta)
        self.dispatcher.notify('cancelled', project, reason=project.cancellation_reason, cancelled_by=user)
        return project

    # Admin status moves

    def launch_campaign(self, project, admin):
        project = self._advance(project, admin, Project.VALIDATED, Project.CAMPAIGNING)
        self.dispatcher.notify('campaigning', project)
        return project

    def go_live(self, project, admin):
        return self._advance(project, admin, Project.CAMPAIGNING, Project.LIVE)

    def _advance(self, project, admin, from_status, to_status):
        self._require_admin(admin)
        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            if project.status != from_status:
                raise InvalidStateTransition(
                    f"Project must be {from_status} to move to {to_status} (current status: {project.status})."
                )
            project.status = to_status
            project.save()
        logger.info(f"Project {project.pk} moved {from_status} -> {to_status} by admin {admin.pk}")
        return project

    # Voting

    def cast_vote(self, project, user, value):
        if value not in (Vote.UPVOTE, Vote.DOWNVOTE):
            raise ValidationError({'value': "Vote must be 1 or -1."})

        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            if project.status != Project.VALIDATED:
                raise InvalidStateTransition("Project is not open for voting.")
            if not project.is_voting_open:
                raise InvalidStateTransition("The voting period for this project has ended.")
            if project.creator_id == user.pk:
                raise PermissionDenied("You cannot vote on your own project.")

            vote = Vote.objects.filter(project=project, user=user).first()
            created = vote is None
            if created:
                vote = Vote.objects.create(project=project, user=user, value=value)
                User.objects.increment_stats(user.pk, votes_cast=1)
            elif vote.value == value:
                raise ConflictError("You have already cast this vote.")
            else:
                vote.value = value
                vote.save(update_fields=['value', 'updated_at'])

            passed = self._apply_vote_counts(project)

        if passed:
            self.dispatcher.notify('campaigning', project)
        return {'vote': vote, 'created': created, 'passed': passed, 'project': project}

    def refresh_voting(self, project):
        """Recount a validated project's votes and open its campaign if the vote passes."""
        with transaction.atomic():
            project = Project.objects.locked(project.pk)
            if project.status != Project.VALIDATED:
                return False
            passed = self._apply_vote_counts(project)

        if passed:
            self.dispatcher.notify('campaigning', project)
        return passed

    def _apply_vote_counts(self, project):
        counts = count_votes(project.pk)
        crowdfund = Crowdfund.objects.select_for_update().get(project=project)
        crowdfund.total_votes = counts['total_votes']
        crowdfund.save(update_fields=['total_votes', 'updated_at'])

        project.total_votes = counts['total_votes']
        project.positive_votes = counts['positive_votes']
        project.negative_votes = counts['negative_votes']
        passed = vote_passes(counts['total_votes'], counts['positive_votes'], crowdfund.threshold_votes)
        if passed:
            project.status = Project.CAMPAIGNING
            logger.info(f"Community vote passed for project {project.pk}: {counts}")
        project.save()
        return passed

    # Milestone release

    def prepare_milestone_release(self, project, admin, index, signer):
        self._require_admin(admin)
        signer = (signer or '').strip()
        if not signer:
            raise ValidationError({'signer': "Signer address is required."})
        milestone = self._releasable_milestone(project, index)
        contract_id = self._contract_id(project)

        result = self._call_gateway('release_milestone_funds', contract_id, milestone.index, signer)
        return {
            'unsigned_transaction': result['unsigned_transaction'],
            'contract_id': contract_id,
            'milestone_index': milestone.index,
            'amount': milestone.amount,
        }

    def confirm_milestone_release(self, project, admin, index, signed_transaction, transaction_hash):
        self._require_admin(admin)
        transaction_hash = (transaction_hash or '').strip()
        if not transaction_hash:
            raise ValidationError({'transaction_hash': "Transaction hash is required."})
        signed_transaction = self._clean_signed(signed_transaction)

        if Milestone.objects.filter(release_transaction_hash=transaction_hash).exists():
            raise ConflictError("This transaction hash has already been recorded.")
        milestone = self._releasable_milestone(project, index)
        contract_id = self._contract_id(project)

        tx = self._submit(signed_transaction)

        try:
            with transaction.atomic():
                milestone = Milestone.objects.select_for_update().get(pk=milestone.pk)
                if milestone.status == Milestone.RELEASED:
                    raise InvalidStateTransition("Milestone funds have already been released.")
                milestone.status = Milestone.RELEASED
                milestone.completed_at = timezone.now()
                milestone.release_transaction_hash = transaction_hash
                milestone.save()
                all_released = not project.milestones.exclude(status=Milestone.RELEASED).exists()
        except Exception as e:
            self._reconcile(
                ReconciliationItem.MILESTONE_RELEASE,
                e,
                project=project,
                user=admin,
                contract_id=contract_id,
                signed_tx_digest=signed_tx_digest(signed_transaction),
                transaction_hash=transaction_hash,
                payload={'milestone_index': milestone.index, 'transaction': tx},
            )

        logger.info(f"Milestone {milestone.index} of project {project.pk} released. All released: {all_released}")
        self.dispatcher.notify('milestone_released', project, milestone=milestone, all_released=all_released)
        return {'milestone': milestone, 'all_released': all_released, 'transaction': tx}

    def _releasable_milestone(self, project, index):
        if project.status != Project.COMPLETED:
            raise InvalidStateTransition("Milestone funds can only be released once the project is fully funded.")
        try:
            milestone = project.milestones.get(index=index)
        except Milestone.DoesNotExist:
            raise NotFound(f"Milestone {index} not found.")
        if milestone.status == Milestone.RELEASED:
            raise InvalidStateTransition("Milestone funds have already been released.")
        return milestone

    # Helpers

    def _call_gateway(self, operation, *args):
        try:
            return getattr(self.gateway, operation)(*args)
        except EscrowGatewayError as e:
            logger.error(f"Escrow gateway {operation} failed: {e.message} (status={e.status_code}, transient={e.transient})")
            raise ExternalServiceError() from e

    def _submit(self, signed_transaction):
        return self._call_gateway('submit_transaction', signed_transaction)

    def _reconcile(self, kind, error, **fields):
        reconciliation_logger.error(
            f"Ledger accepted a {kind} transaction but the local write failed: "
            f"contract={fields.get('contract_id')} digest={fields.get('signed_tx_digest')} "
            f"hash={fields.get('transaction_hash')} error={error!r}"
        )
        try:
            ReconciliationItem.objects.create(kind=kind, error=repr(error), **fields)
        except Exception:
            reconciliation_logger.exception(f"Failed to record reconciliation item for {kind}")
        raise ReconciliationRequired() from error

    def _record_activity(self, user, project, activity_type, meta=None, **fields):
        meta = meta or {}
        try:
            Activity.objects.create(
                user=user,
                project=project,
                activity_type=activity_type,
                ip_address=meta.get('ip_address'),
                user_agent=(meta.get('user_agent') or '')[:500],
                **fields,
            )
        except Exception:
            logger.exception(f"Failed to record {activity_type} activity for project {project.pk}")

    def _contract_id(self, project):
        escrow = EscrowContract.objects.filter(project=project).first()
        if escrow is None or not escrow.contract_id:
            raise InvalidStateTransition("Project escrow contract not found.")
        return escrow.contract_id

    def _clean_amount(self, amount):
        try:
            amount = Decimal(str(amount)).quantize(CENT)
        except ArithmeticError:
            raise ValidationError({'amount': "A valid funding amount is required."})
        if amount <= 0:
            raise ValidationError({'amount': "Funding amount must be greater than zero."})
        return amount

    def _clean_signed(self, signed_transaction):
        signed_transaction = (signed_transaction or '').strip()
        if not signed_transaction:
            raise ValidationError({'signed_transaction': "Signed transaction is required."})
        return signed_transaction

    def _require_admin(self, user):
        if not user.is_staff:
            raise PermissionDenied("Only admins can perform this action.")

    def _require_owner(self, project, user):
        if project.creator_id != user.pk:
            raise PermissionDenied("Only the project creator can perform this action.")

    def _require_editable(self, project):
        if project.status not in Project.EDITABLE_STATUSES:
            raise InvalidStateTransition(f"Project can no longer be modified (status: {project.status}).")
