from django.core.management.base import BaseCommand

from projects.models import Project
from projects.services import ProjectLifecycleService


class Command(BaseCommand):
    help = "Recounts votes of validated projects and opens the campaign of those whose community vote has passed."

    def add_arguments(self, parser):
        parser.add_argument('--project', type=int, help='Only re-evaluate this project id')

    def handle(self, *args, **options):
        service = ProjectLifecycleService()
        projects = Project.objects.crowdfunds().filter(status=Project.VALIDATED)
        if options['project']:
            projects = projects.filter(pk=options['project'])

        checked = passed = 0
        for project in projects.iterator():
            checked += 1
            if service.refresh_voting(project):
                passed += 1
                self.stdout.write(self.style.SUCCESS(f"Project {project.pk} '{project.title}' is now campaigning."))

        self.stdout.write(f"Checked {checked} validated project(s), {passed} passed the community vote.")
