import logging

from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.mail import send_mail
from django.template.loader import render_to_string

logger = logging.getLogger(__name__)

User = get_user_model()


class NotificationDispatcher:
    """
    Best-effort email fan-out for project lifecycle events.

    Each event maps to one or more (audience, template, subject) entries.
    Audiences are ``creator``, ``admins`` (staff users), ``contributor`` and
    ``invitees``; the last two are taken from the context passed to ``notify``.
    Failures are logged and swallowed, a committed transition is never affected.
    """

    EVENTS = {
        'created': [
            ('creator', 'project_created', "Your crowdfunding project has been created"),
            ('admins', 'admin_new_project', "New crowdfunding project awaiting review"),
        ],
        'updated': [
            ('creator', 'project_updated', "Your project has been updated"),
        ],
        'deleted': [
            ('creator', 'project_deleted', "Your project has been deleted"),
        ],
        'approved': [
            ('creator', 'project_approved', "Your project has been approved"),
        ],
        'rejected': [
            ('creator', 'project_rejected', "Your project was not approved"),
        ],
        'cancelled': [
            ('creator', 'project_cancelled', "Your project has been cancelled"),
            ('admins', 'admin_project_cancelled', "A crowdfunding project was cancelled"),
        ],
        'funded': [
            ('creator', 'project_funded', "Your project received funding"),
            ('contributor', 'contribution_successful', "Your contribution was successful"),
        ],
        'fully_funded': [
            ('creator', 'project_fully_funded', "Your project is fully funded"),
            ('admins', 'admin_project_fully_funded', "A crowdfunding project reached its goal"),
        ],
        'campaigning': [
            ('creator', 'project_campaigning', "Your campaign is open for funding"),
        ],
        'milestone_released': [
            ('creator', 'milestone_released', "Milestone funds released"),
        ],
        'team_invitation': [
            ('invitees', 'team_invitation', "You've been invited to join a project"),
        ],
    }

    def notify(self, event, project, **context):
        try:
            self._dispatch(event, project, context)
        except Exception:
            logger.exception(f"Failed to send '{event}' notifications for project {project.pk}")

    def _dispatch(self, event, project, context):
        if event not in self.EVENTS:
            raise ValueError(f"Unknown notification event: {event}")

        base_context = {
            'project': project,
            'site_name': settings.SITE_NAME,
            'project_url': f"{settings.FRONTEND_DOMAIN}/projects/{project.pk}",
            **context,
        }
        for audience, template, subject in self.EVENTS[event]:
            for recipient in self._recipients(audience, project, context):
                self._send(recipient, subject, template, base_context)

    def _recipients(self, audience, project, context):
        if audience == 'creator':
            return [project.creator.email]
        if audience == 'admins':
            return list(User.objects.filter(is_staff=True, is_active=True).values_list('email', flat=True))
        if audience == 'contributor':
            contributor = context.get('contributor')
            return [contributor.email] if contributor else []
        if audience == 'invitees':
            return [invitation.email for invitation in context.get('invitations', [])]
        return []

    def _send(self, recipient, subject, template, context):
        # one recipient at a time so a bad address does not block the others
        try:
            message = render_to_string(f'emails/{template}.txt', {**context, 'recipient': recipient})
            send_mail(
                subject=f"[{settings.SITE_NAME}] {subject}",
                message=message.strip(),
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[recipient],
                fail_silently=False,
            )
            logger.info(f"Sent '{template}' email to {recipient}")
        except Exception:
            logger.exception(f"Failed to send '{template}' email to {recipient}")


dispatcher = NotificationDispatcher()
